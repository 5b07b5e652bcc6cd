"""
BioField session and authentication lifecycle core.

Typical wiring::

    from biofield_auth.config import get_config
    from biofield_auth.services import create_services

    services = create_services(db=db, config=get_config())
    session = services["session_facade"]
    await session.initialize()
"""

__version__ = "1.0.0"
