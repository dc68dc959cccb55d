"""
ASGI entry point.

Used by uvicorn / gunicorn:

    uvicorn server.asgi:app --app-dir backend

Environment comes from the process, optionally seeded from a .env file.
"""

from dotenv import load_dotenv

load_dotenv()

from server.app import create_app  # pylint: disable=wrong-import-position

app = create_app()


def main() -> None:
    """Console entry point for local runs."""
    import uvicorn  # pylint: disable=import-outside-toplevel

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level=app.state.config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
