"""Plugin package initialiser (source of truth).

Rebuild rules:
- Keep this file lightweight; do not import concrete plugins here so imports of
  ``smartclass.plugins`` remain side-effect free.
- Concrete plugin modules (``logging``, ``pydantic``) self-register when
  imported elsewhere (see ``smartclass.__init__`` for eager imports).
"""

__all__: list[str] = []
