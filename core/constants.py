"""
Core Module - Constants.

============================================================
RESPONSIBILITY
============================================================
Defines all platform-wide constants.

- Provides single source of truth for magic values
- Used as defaults by data_marketplace.config
- Amounts are in the smallest currency unit

============================================================
"""

# ============================================================
# SYSTEM CONSTANTS
# ============================================================

SYSTEM_NAME = "health-data-marketplace"
SYSTEM_VERSION = "1.0.0"

# ============================================================
# TIME CONSTANTS (BLOCK HEIGHTS)
# ============================================================

SECONDS_PER_BLOCK = 12
BLOCKS_PER_DAY = 86400 // SECONDS_PER_BLOCK

CONSENT_DURATION_BLOCKS = 365 * BLOCKS_PER_DAY
"""Validity window of a consent grant."""

REQUEST_DURATION_BLOCKS = 180 * BLOCKS_PER_DAY
"""Default lifetime of a research request."""

# ============================================================
# PAYMENT CONSTANTS
# ============================================================

MIN_PAYMENT = 1_000_000
"""Minimum listing price and minimum max-price-per-record."""

MAX_PAYMENT = 1_000_000_000_000_000
"""Upper cap for any single price."""

MAX_BUDGET = 2**63 - 1
"""Upper cap for an escrowed budget; the largest signed 64-bit amount column value."""

PLATFORM_FEE_BPS = 2000
"""Platform fee in basis points (20%)."""

BPS_DENOMINATOR = 10_000

# ============================================================
# QUALITY CONSTANTS
# ============================================================

MIN_QUALITY_SCORE = 0
MAX_QUALITY_SCORE = 100

QUALITY_THRESHOLD = 60
"""Final score at or above which a record becomes available."""

MIN_REQUEST_QUALITY = 60
"""Platform floor for a request's minimum acceptable quality."""

# ============================================================
# SETTLEMENT CONSTANTS
# ============================================================

MAX_USAGE_PER_RECORD = 10
"""Per-record purchase ceiling."""

REPUTATION_PER_PURCHASE = 1
REPUTATION_PER_COMPLETED_STUDY = 10

# ============================================================
# FIELD BOUNDS
# ============================================================

FINGERPRINT_LENGTH = 32
MAX_METADATA_LENGTH = 500
MAX_NOTES_LENGTH = 500
MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000
MAX_PURPOSE_LENGTH = 200
MAX_INSTITUTION_LENGTH = 100
MAX_APPROVAL_REFERENCE_LENGTH = 64
MAX_LIST_ENTRIES = 10
MAX_LIST_ENTRY_LENGTH = 64

# ============================================================
# ACCOUNTS
# ============================================================

ESCROW_ACCOUNT = "marketplace:escrow"
