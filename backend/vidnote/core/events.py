# Relay envelope type definitions (the "type" field of every JSON frame)

# Client -> server
JOIN = "join"

# Server -> client
JOINED = "joined"

# Both directions
NEW_COMMENT = "new_comment"
TYPING = "typing"

CLIENT_EVENTS = frozenset({JOIN, NEW_COMMENT, TYPING})
