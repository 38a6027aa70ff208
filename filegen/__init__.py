"""filegen -- scaffold Next.js projects from named templates.

Quick usage::

    filegen --template e-commerce --ci github-actions
    filegen check-deps --fix
    filegen component ProductCard --props title,price
"""

__version__ = "2.0.10"
