import configparser
import os
import logging

from voucher_alloc.logics.domain import AllocationConfig

# Get base directory
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
CONFIG_PATH = os.path.join(BASE_DIR, "config.ini")
LOG_PATH = os.path.join(BASE_DIR, "app.log")

def setup_logging():
    logging.basicConfig(
        filename=LOG_PATH,
        level=logging.DEBUG,
        format='%(asctime)s - %(levelname)s - %(name)s - %(message)s'
    )

setup_logging()

logger = logging.getLogger(__name__)

# Load config
config = configparser.ConfigParser()
config.read(CONFIG_PATH)

logger.info("Loaded configuration from %s", CONFIG_PATH)
if not config.sections():
    logger.warning("No sections found in config.ini")
    raise RuntimeError("config.ini is missing or empty")

# Settings
MODE = config.get("settings", "mode", fallback="DEBUG")
MSSQL_USER = config.get("mssql", "user")
MSSQL_PASSWORD = config.get("mssql", "password")
MSSQL_HOST = config.get("mssql", "host")
MSSQL_PORT = config.get("mssql", "port")
MSSQL_DB = config.get("mssql", "database")
OPTIONS = dict(config.items("options"))

# URLs
SQLITE_DATABASE_URL = f"sqlite:///{os.path.join(BASE_DIR, 'allocation.db')}"
MSSQL_DATABASE_URL = (
    f"mssql+pyodbc://{MSSQL_USER}:{MSSQL_PASSWORD}@{MSSQL_HOST}:{MSSQL_PORT}/{MSSQL_DB}"
    f"?driver={OPTIONS['driver'].replace(' ', '+')}"
)


def get_database_url() -> str:
    """Resolve the database URL for the configured MODE."""
    if MODE.upper() == "DEBUG":
        return SQLITE_DATABASE_URL
    elif MODE.upper() == "PRODUCTION":
        return MSSQL_DATABASE_URL
    raise ValueError("Invalid MODE specified in config.")


def _parse_cap_levels(raw: str):
    levels = tuple(int(part) for part in raw.split(",") if part.strip())
    if not levels:
        raise ValueError("foreign_cap_levels must list at least one cap")
    return levels


# Allocation tuning
ALLOCATION_CONFIG = AllocationConfig(
    baseline_weight=config.getfloat("allocation", "baseline_weight", fallback=100.0),
    overshoot_min_weight=config.getfloat("allocation", "overshoot_min_weight", fallback=100.0),
    foreign_cap_levels=_parse_cap_levels(
        config.get("allocation", "foreign_cap_levels", fallback="2,3,4")
    ),
)
logger.info("Allocation config: %s", ALLOCATION_CONFIG)
