"""
Entry point for the chat registry client.
"""
from .cli import app


if __name__ == "__main__":
    app(prog_name="chatregistry-client")
