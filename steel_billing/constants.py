DATA_DIR = "data"
DB_FILE_NAME = "steel_store.db"
LOG_DIR = "logs"
LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.0.0"

# money comparisons tolerate one paisa of floating-point drift
MONEY_EPSILON = 0.01

# reconciliation thresholds
RECONCILE_DRIFT_TOLERANCE = 0.02
RECONCILE_CLAMP_LIMIT = 1.0

# kg-grams: 1 kg = 1000 g
SUBUNIT_SCALE = 1000

ISSUE_BALANCE_EXCEEDS_TOTAL = "BALANCE_EXCEEDS_TOTAL"
ISSUE_NEGATIVE_BALANCE_UNPAID = "NEGATIVE_BALANCE_UNPAID"

SETTLEMENT_LEDGER = "ledger"
SETTLEMENT_CASH = "cash"
SETTLEMENT_TYPES = (SETTLEMENT_LEDGER, SETTLEMENT_CASH)
