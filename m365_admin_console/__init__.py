"""
M365 Admin Console
==================
Interactive Exchange Online administration consoles:

  * Compliance search console: build content-search filters, create and
    start search jobs, submit exports.
  * Calendar permission console: view, change and verify calendar folder
    permissions, and report on every calendar permission in the tenant.

WARNING: Unlike read-only scanners, this tool MODIFIES the tenant when the
         operator confirms an action. Use --read-only to block all writes.
"""

__version__ = "1.0.0"
__author__ = "M365 Admin Console"
