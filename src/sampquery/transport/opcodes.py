# Request framing
MAGIC        = b"SAMP"
OPCODE_INFO  = b"i"

# magic(4) + address(4) + port(2) + opcode(1); replies echo the same header
HEADER_SIZE  = 11

# Receive side
RECV_BUFSIZE   = 1500
RECV_TIMEOUT_S = 2.0
