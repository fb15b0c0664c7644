"""Service layer for business logic.

Services encapsulate all business logic, keeping routes thin and focused
on HTTP handling.

Layer hierarchy:
    Routes / CLI -> Services (Business Logic) -> Repositories (Database)

Services should:
- Contain all business rules and validation
- Orchestrate calls to repositories
- Return dataclasses or ORM models (routes convert to schemas)
- Not contain HTTP-specific logic (status codes, response formatting)
"""
