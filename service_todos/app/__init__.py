"""
Todo Service package for the IAM Todo application.

A session-gated todo list backed by PostgreSQL on RDS. The database has no
static password: every new physical connection authenticates with a fresh
RDS IAM auth token. It provides:

- app.main: API surface, composition root and process supervision.
- app.config: Environment-sourced settings and the database endpoint.
- app.persistence: Trust bundle, token signer, connection pool, schema,
  health probe and the todo repository.
- app.auth: Shared-password login gate over a signed cookie session.

Guidelines:
- Startup is sequential; no traffic is served before the schema exists.
- Tokens are minted per physical connection and never logged or reused.
"""
