import os
import sys

# Add root to path
sys.path.append(os.getcwd())

from casgate.core.session_store import SQLSessionStore
from casgate.core.ticket_store import SQLPGTStore
from casgate.database import engine

try:
    pgts = SQLPGTStore(engine).purge_expired()
    revocations = SQLSessionStore(engine).purge_expired()
    print(f"Successfully deleted {pgts} proxy-granting tickets and {revocations} revocations.")
except Exception as e:
    print(f"Error deleting records: {e}")
    sys.exit(1)
