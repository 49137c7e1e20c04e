"""Socket.IO event names shared by the server and the client adapter."""

JOIN_EVENT = "join-conversation"
LEAVE_EVENT = "leave-conversation"
SEND_EVENT = "send-message"
NEW_MESSAGE_EVENT = "new-message"
