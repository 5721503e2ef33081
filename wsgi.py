'''Web Server Gateway Interface entry-point.'''
from app import create_app

application = create_app()
