from flask import Flask, request, jsonify
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import DeclarativeBase
import os
from werkzeug.middleware.proxy_fix import ProxyFix
import logging

# Configure logging - use INFO level for production
logging.basicConfig(level=logging.INFO)

class Base(DeclarativeBase):
    pass

# Initialize Flask app
app = Flask(__name__)
app.secret_key = os.environ.get('SESSION_SECRET', 'dev-secret')
app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1) # needed for url_for to generate with https

# Database configuration
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('SQLALCHEMY_DATABASE_URI', 'sqlite:///pec_bus.db')
app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
    'pool_pre_ping': True,
    "pool_recycle": 300,
}

# Seeded admin account
app.config['DEFAULT_ADMIN_EMAIL'] = os.environ.get('DEFAULT_ADMIN_EMAIL', 'admin@pec.edu')
app.config['DEFAULT_ADMIN_PASSWORD'] = os.environ.get('DEFAULT_ADMIN_PASSWORD', 'admin@0704')

db = SQLAlchemy(app, model_class=Base)

# No caching for dashboard data - every analysis is computed fresh
@app.after_request
def add_cache_headers(response):
    if request.endpoint and response.content_type.startswith(('text/html', 'application/json', 'text/csv')):
        response.headers['Cache-Control'] = 'no-cache, no-store, must-revalidate'
        response.headers['Pragma'] = 'no-cache'
        response.headers['Expires'] = '0'
    return response

# Flask-Login setup
from flask_login import LoginManager
from flask_wtf.csrf import CSRFProtect
from datetime import timedelta

# Configure session duration
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(hours=24)

login_manager = LoginManager()
login_manager.init_app(app)
login_manager.login_view = 'login'
login_manager.login_message = 'Please log in to access this page.'
login_manager.session_protection = 'strong'

# CSRF Protection
csrf = CSRFProtect(app)

@login_manager.user_loader
def load_user(user_id):
    from models import User
    return db.session.get(User, int(user_id))

@app.errorhandler(404)
def not_found(error):
    if request.path.startswith('/api/') or request.accept_mimetypes.best == 'application/json':
        return jsonify({'success': False, 'error': 'Not found'}), 404
    return error


def ensure_default_admin():
    """Create the default admin account if no admin exists"""
    import models

    admin_user = models.User.query.filter_by(role=models.ROLE_ADMIN).first()
    if admin_user:
        return admin_user

    admin_user = models.User(
        identifier=app.config['DEFAULT_ADMIN_EMAIL'],
        role=models.ROLE_ADMIN,
        name='Administrator'
    )
    admin_user.set_password(app.config['DEFAULT_ADMIN_PASSWORD'])
    db.session.add(admin_user)
    db.session.commit()
    logging.info(f"Default admin user created: {admin_user.identifier}")
    return admin_user


# Create tables and default admin user
# Need to put this in module-level to make it work with Gunicorn.
with app.app_context():
    import models  # noqa: F401

    # Create tables if they don't exist
    db.create_all()
    ensure_default_admin()

    logging.info("Database tables created")
