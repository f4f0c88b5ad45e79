"""UTC timezone enforcement.

Imported for its side effect: hold timeouts and transaction timestamps are
compared in UTC regardless of the host's local zone.
"""

import os

os.environ["TZ"] = "UTC"
