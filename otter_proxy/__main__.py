"""Package entry point for ``python -m otter_proxy``.

Delegates to the CLI; ``python -m otter_proxy serve`` starts the proxy.
"""

from otter_proxy.cli import main

if __name__ == "__main__":
    main()
