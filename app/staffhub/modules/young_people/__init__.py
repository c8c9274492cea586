"""
Young people: the subjects of YOUNG_PEOPLE forms.

Holds the `YoungPerson` model only. Records are maintained outside this app.
"""
