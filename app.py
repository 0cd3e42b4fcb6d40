"""Application entry point for the Kattepension booking API."""

import logging

from kattepension.webapp import create_app

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=logging.INFO
)

app = create_app()


if __name__ == "__main__":
    app.run(debug=True)
