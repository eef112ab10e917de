"""
Persistence package for the Todo service.

Everything between the HTTP handlers and PostgreSQL lives here:

- tls: CA trust bundle used to verify the RDS endpoint.
- iam: RDS IAM token signer and the per-connection credential provider.
- pool: Connection pool authenticating each physical connection with a
  freshly minted token.
- schema: Idempotent table bootstrap.
- health: Round-trip liveness probe.
- todos: Todo repository.
"""
