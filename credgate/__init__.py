"""credgate - Local credential gateway for autonomous agent CLIs.

Validates every token, secret reference and binary on the way to the agent
process and refuses to launch when any of them cannot be trusted.
"""

__version__ = "0.1.0"
