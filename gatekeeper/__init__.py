"""
Gatekeeper

Noyau partagé d'authentification, de sessions et d'autorisation (RBAC)
de la plateforme juridique multi-professions.
"""

__version__ = "1.0.0"
