"""Otter API proxy: a credential-based Otter.ai client behind a small HTTP API.

WHY: Otter.ai has no public API for listing and reading transcripts. This
package drives the web app's own endpoints with a user's credentials and
exposes the useful parts (login, speech listing, transcripts) over a thin
HTTP proxy and a CLI.

HOW: Three layers: the async API client (api/), the FastAPI proxy with
its in-memory session store (server/), and the command-line interface
(cli.py). Each layer is independently testable.

RULES:
- All Otter traffic goes through otter_proxy.api.OtterClient
- One logged-in OtterClient per proxy session
"""

__version__ = "1.0.0"
