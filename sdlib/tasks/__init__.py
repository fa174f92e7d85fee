"""
Higher-level methods combining plumbing into complete operations.

Each public function or class in this module should:

- perform a complete operation, as needed by a script or tool call
- validate its parameters before making any external call
- accept plumbing clients as arguments rather than creating their own
"""
