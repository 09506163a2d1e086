import json
import logging
import logging.config
from pathlib import Path

from billing_sync.interfaces.http.application import create_app

logging_config_path = Path(__file__).with_name("logging.json")
if logging_config_path.exists():
    logging.config.dictConfig(json.loads(logging_config_path.read_text(encoding="utf-8")))
else:
    logging.basicConfig(level=logging.INFO)

app = create_app()
