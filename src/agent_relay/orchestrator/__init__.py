"""Agent execution orchestrator.

Runs a prompt through an external coding-assistant CLI (claude, cursor-agent,
codex, gemini) and turns its streaming output into a single progress model.

Every backend speaks its own line protocol, so each one gets an adapter in
``adapters/`` that maps a raw line to at most one ``ProgressEvent`` and, the
first time it appears, the backend's resumable session id.  The orchestrator
never branches on the tool: it looks the adapter config up in the registry,
asks the availability probe whether the CLI can run headless, and otherwise
hands the prompt to the automation fallback.

Process supervision is plain ``subprocess`` with reader threads and a timer.
Callbacks are delivered from a per-request queue so a slow consumer can never
stall the pipe reads of a chatty child process.
"""
