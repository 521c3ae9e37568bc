"""Connectivity state and transport lifecycle events.

The connection manager is the only writer of :class:`ConnectivityState`;
everything else observes it through :class:`ConnectionEvent` transitions.
"""
