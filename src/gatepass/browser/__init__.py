"""Browser automation modules (Playwright).

``configurator`` and ``stealth`` set request identity and hide automation
tells, ``gatekeeper`` filters resource requests, ``detector`` finds the
Turnstile widget and ``acquisition`` installs a token. All in-page code
runs through ``remote.RemoteExecutor``.
"""
