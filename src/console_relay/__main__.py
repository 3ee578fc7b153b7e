"""console-relay 入口点。

支持: python -m console_relay
"""

from .app import main

if __name__ == "__main__":
    main()
