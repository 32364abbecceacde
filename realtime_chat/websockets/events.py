"""Event names carried in the frame envelope."""

# client -> server
ROOM_JOIN = "room:join"
ROOM_LEAVE = "room:leave"
MESSAGE_SEND = "message:send"
TYPING_START = "typing:start"
TYPING_STOP = "typing:stop"

# server -> client
ROOM_USERS = "room:users"
ROOM_HISTORY = "room:history"
ROOM_USER_JOINED = "room:user-joined"
ROOM_USER_LEFT = "room:user-left"
MESSAGE_NEW = "message:new"
TYPING_STARTED = "typing:started"
TYPING_STOPPED = "typing:stopped"
ACK = "ack"
