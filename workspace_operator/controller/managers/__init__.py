"""Business logic behind the HTTP surface.

Managers accept a ``ResourceStore`` as a parameter and return domain results
or raise domain exceptions (``LookupError``, ``ValueError``), never HTTP
exceptions -- that translation is the router's responsibility.
"""
