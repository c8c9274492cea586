"""
Feature modules live under this package.

Keep module boundaries clean: each module owns its routes/models, while reusing
platform primitives (auth, access scope, capabilities, audit, DB session).
"""
