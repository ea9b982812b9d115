"""
variance_batch -- bounded-window reconciliation across request round trips.

The interactive driver processes one window of an operator's selection
per request and threads its progress through a continuation token; the
scheduled runner walks every receipt/bill pair in one invocation under
an operation budget.
"""
