# Room relay protocol constants (numeric keys and message types)

RELAY_VERSION = 1

# Envelope keys
K_V = 0
K_T = 1
K_ID = 2
K_TS = 3
K_SRC = 4
K_ROOM = 5
K_BODY = 6
K_NICK = 7
K_KIND = 8

# Inbound message types (client -> hub)
T_JOIN_PRIVATE = 10
T_JOIN_PUBLIC = 11
T_NICK = 12
T_SEND = 20

# Outbound message types (hub -> client)
T_INVALID = 13
T_MESSAGE = 21
T_ONLINE_COUNT = 30
T_ERROR = 40

# MESSAGE kinds. A MESSAGE without K_KIND is plain chat.
KIND_JOIN = "join"
KIND_LEAVE = "leave"

PUBLIC_ROOM = "PUBLICROOM"
ROOM_CODE_LEN = 7

NICK_MAX_CHARS = 24
MESSAGE_MAX_CHARS = 1024

CONNECT_TIMEOUT_S = 10.0

DEFAULT_CENSORED_WORDS = (
    "arse",
    "asshole",
    "bastard",
    "bitch",
    "bollocks",
    "crap",
    "damn",
    "fuck",
    "shit",
    "wanker",
)
