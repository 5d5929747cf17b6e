"""
TTG Protocol Constants

This module consolidates global constants and environment configuration
used throughout the codebase. Constants are organized by category for easy
reference and maintenance.
"""
from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - [%(tx)s] %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'False',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# ==================================================================================
# ENCODING
# ==================================================================================
ZERO_ADDRESS = '0x' + '00' * 20
ZERO_BYTES32 = b'\x00' * 32
BYTES32_LENGTH = 32


# ==================================================================================
# RATIOS
# ==================================================================================
# Quorum ratios are expressed in basis points (uint16 on-chain)
ONE = 10_000
MAX_QUORUM_RATIO = ONE


# ==================================================================================
# GOVERNANCE DEFAULTS
# ==================================================================================
DEFAULT_PROPOSAL_FEE = 10
DEFAULT_MIN_PROPOSAL_FEE = 1
DEFAULT_MAX_PROPOSAL_FEE = 1_000
DEFAULT_PROPOSAL_REWARD = 5
DEFAULT_VOTE_QUORUM_RATIO = 4_000   # 40% of the vote (power) token supply
DEFAULT_VALUE_QUORUM_RATIO = 4_000  # 40% of the value (zero) token supply
DEFAULT_VOTING_DELAY = 0
DEFAULT_VOTING_PERIOD = 5 * 86400
DEFAULT_RESOLUTION_GRACE = 14 * 86400
DEFAULT_EPOCH_DURATION = 15 * 86400
DEFAULT_TARGET_PROPOSALS_PER_EPOCH = 10


# ==================================================================================
# AUCTION DEFAULTS
# ==================================================================================
DEFAULT_AUCTION_START_PRICE = 100
DEFAULT_AUCTION_FLOOR_PRICE = 1
DEFAULT_AUCTION_DECAY_DURATION = 3 * 86400
DEFAULT_AUCTION_ROUND_DURATION = 5 * 86400


# ==================================================================================
# TOKEN DEFAULTS
# ==================================================================================
DEFAULT_TOKEN_DECIMALS = 18
MAX_TOKEN_DECIMALS = 18


# ==================================================================================
# ERC712 / SIGNATURES
# ==================================================================================
ERC712_DOMAIN_TYPE = (
    "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
BALLOT_TYPE = "Ballot(uint256 proposalId,uint8 support,uint8 track,uint256 nonce,uint256 deadline)"
DELEGATION_TYPE = "Delegation(address delegatee,uint256 nonce,uint256 expiry)"
PERMIT_TYPE = (
    "Permit(address owner,address spender,uint256 value,uint256 nonce,uint256 deadline)"
)
ERC712_VERSION = "1"

# secp256k1 group order; signatures with s above half of it are malleable
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_N_HALF = SECP256K1_N // 2


# ==================================================================================
# LEDGER DEFAULTS
# ==================================================================================
DEFAULT_CHAIN_ID = 1
DEFAULT_GENESIS_TIME = 1_700_000_000
DEFAULT_BLOCK_TIME = 12


# ==================================================================================
# LOGGER SETTINGS (.env)
# ==================================================================================
class ConfigString(str):
    """Setting read from ``.env``, remembering its built-in default."""

    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default


class ConfigBool(int):
    """Boolean flavour of ``ConfigString``; renders as ``True``/``False``."""

    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    __str__ = __repr__

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


_BOOL_WORDS = {"true": True, "yes": True, "1": True, "false": False, "no": False, "0": False}


def _as_bool(raw):
    if isinstance(raw, str):
        return _BOOL_WORDS.get(raw.strip().casefold())
    return None


def _setting(key):
    default = LOGGER_DEFAULTS[key]
    raw = _config.get(key)
    raw = default if raw is None else raw
    if _as_bool(default) is not None and _as_bool(raw) is not None:
        return ConfigBool(_as_bool(raw), _as_bool(default))
    return ConfigString(raw, default)


LOG_LEVEL = _setting('LOG_LEVEL')
LOG_FORMAT = _setting('LOG_FORMAT')
LOG_DATE_FORMAT = _setting('LOG_DATE_FORMAT')
LOG_CONSOLE_HIGHLIGHTING = _setting('LOG_CONSOLE_HIGHLIGHTING')
LOG_FILE_OUTPUT = _setting('LOG_FILE_OUTPUT')
