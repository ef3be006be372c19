"""Users app package.

Email-login accounts shared by drivers and driveway owners. Use
``apps.users.models.CustomUser`` as the AUTH_USER_MODEL throughout
the project.
"""
