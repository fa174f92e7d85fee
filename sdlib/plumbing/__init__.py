"""
Low-level APIs wrapping the host's service manager and journal.

Each client in this module should:

- map one capability method to a single external call, with no retries
- raise an exception on any failures, wrapping tool errors in `TransportError`
- be owned by one caller at a time, rather than locking internally

Clients come in two flavours:

- abstract capabilities (`ServiceManager`, `LogStore`), which tasks are written against
- concrete adapters (`Systemctl`, `Journalctl`), driving the command-line tools
"""
