"""pixelchat CLI entry point."""

from pixelchat.cli import app

if __name__ == "__main__":
    app()
