"""Process settings for the logbook.

Values come from environment variables, optionally read from a ``.env``
file in the working directory.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DATA_DIR = Path(os.getenv("ROTA_DATA_DIR", "data"))
LOG_LEVEL = os.getenv("ROTA_LOG_LEVEL", "INFO").upper()

# Logical storage keys; each one is a JSON file under DATA_DIR.
ENTRIES_KEY = "rota_financeira_data"
CONFIG_KEY = "rota_financeira_config"
