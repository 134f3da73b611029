from typing import Any, Dict, Optional

from flask import Flask, request, jsonify
from flask_cors import CORS
from ariadne import make_executable_schema, graphql_sync
from ariadne.explorer import ExplorerGraphiQL
from .schema import type_defs
from .routes import query, mutation
from .services import build_services
from .settings import load_settings

schema = make_executable_schema(type_defs, [query, mutation])


def create_app(overrides: Optional[Dict[str, Any]] = None, config_path: Optional[str] = None) -> Flask:
    settings = load_settings(config_path=config_path, overrides=overrides)
    services = build_services(settings)

    app = Flask(__name__)
    app.config["SERVICES"] = services
    CORS(app)

    @app.route("/graphql", methods=["GET"])
    def graphql_playground():
        return ExplorerGraphiQL().html(None), 200

    @app.route("/graphql", methods=["POST"])
    def graphql_server():
        data = request.get_json()
        auth_header = request.headers.get("Authorization", "")
        token = auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else None

        context = {"request": request, "token": token, "services": services}

        success, result = graphql_sync(schema, data, context_value=context, debug=app.debug)
        status_code = 200 if success else 400
        return jsonify(result), status_code

    return app
