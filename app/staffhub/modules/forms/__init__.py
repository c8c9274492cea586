"""
Forms module: young people form entries and their lifecycle.

- Entries start as DRAFT from a PUBLISHED blueprint of the subject's company
- Answers are editable only while DRAFT
- Submit moves DRAFT to SUBMITTED (staff) or LOCKED (manager level)
- Delete is a soft delete: DRAFT to CANCELLED; rows are never removed
"""
