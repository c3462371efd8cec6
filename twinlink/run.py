import logging
import pathlib
import sys

import uvicorn

ROOT = pathlib.Path(__file__).resolve().parent.parent
sys.path.append(str(ROOT))
from twinlink.services.config import LOG_LEVEL
from twinlink.app.main import app


def main() -> None:
    logging.basicConfig(level=LOG_LEVEL)
    cert_dir = ROOT / "certs"
    cert, key = cert_dir / "server.cert.pem", cert_dir / "server.key.pem"
    ssl_kwargs = {}
    if cert.exists() and key.exists():
        ssl_kwargs = {"ssl_certfile": str(cert), "ssl_keyfile": str(key)}
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level=LOG_LEVEL.lower(), **ssl_kwargs)


if __name__ == "__main__":
    main()
