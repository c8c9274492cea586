"""
People module: membership and level assignment for staff.

Invites, passwords and email changes are handled outside this app.
"""
