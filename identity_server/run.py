import argparse
from identity_server.api import create_app

def main():
    parser = argparse.ArgumentParser(description="Launch identity workflow GraphQL server")
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    parser.add_argument("--port", type=int, default=5000, help="Port to run the server on")
    parser.add_argument("--config", default=None, help="Path to a server.json settings file")
    parser.add_argument("--debug", action="store_true", help="Enable Flask debug mode")
    args = parser.parse_args()

    app = create_app(config_path=args.config)
    app.run(host=args.host, port=args.port, debug=args.debug)

if __name__ == "__main__":
    main()
