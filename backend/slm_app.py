import logging

from flask import Flask, request, jsonify
from flask_cors import CORS
import slm

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    "SOURCE_NAME": "<request>",
    "MAX_SOURCE_LENGTH": 65536,
}

def ast_to_dict(node):
    """
    Serialize AST to dict recursively
    """
    if node is None:
        return None
    d = {"type": type(node).__name__}
    if isinstance(node, slm.Program):
        d["statements"] = [ast_to_dict(s) for s in node.statements]
    elif isinstance(node, slm.Let):
        d["identifier"] = ast_to_dict(node.identifier)
        d["expression"] = ast_to_dict(node.expression)
    elif isinstance(node, slm.Call):
        d["identifier"] = ast_to_dict(node.identifier)
        d["argument"] = ast_to_dict(node.argument)
    elif isinstance(node, slm.Identifier):
        d["name"] = node.name
        d["position"] = node.position._asdict()
    elif isinstance(node, slm.Literal):
        d["value"] = node.value
        d["typ"] = node.typ
        d["position"] = node.position._asdict()
    return d

def token_to_dict(token):
    return {
        "type": token.type,
        "value": token.value,
        "position": token.position._asdict(),
    }

def create_app(config=None):
    app = Flask(__name__)
    app.config.update(DEFAULT_CONFIG)
    app.config.from_prefixed_env("SLM")
    if config:
        app.config.update(config)
    CORS(app)  # allow cross-origin requests

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"})

    @app.route("/compile", methods=["POST"])
    def compile_code():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"errors": ["request body must be a JSON object"]}), 400
        code = data.get("code")
        if not isinstance(code, str):
            return jsonify({"errors": ["'code' must be a string"]}), 400
        if len(code) > app.config["MAX_SOURCE_LENGTH"]:
            return jsonify({"errors": [f"source longer than {app.config['MAX_SOURCE_LENGTH']} characters"]}), 400
        path = data.get("path") or app.config["SOURCE_NAME"]

        try:
            result = slm.compile_source(code, path)
        except Exception as e:
            logger.exception("compile request failed")
            return jsonify({
                "tokens": [],
                "ast": {},
                "assembly": [],
                "errors": [f"Unexpected error: {str(e)}"],
                "error": None,
                "symbol_table": {},
            }), 500

        err = result['error']
        if err is not None:
            logger.debug("compile error: %s", err.message)

        response = {
            "tokens": [token_to_dict(t) for t in result['tokens']],
            "ast": ast_to_dict(result['ast']) if result['ast'] else {},
            "assembly": result['asm'],
            "errors": result['errors'],
            "error": err.to_dict() if err is not None else None,
            "symbol_table": result['symbol_table'],
        }
        return jsonify(response)

    return app

app = create_app()

if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    app.run(debug=True)
