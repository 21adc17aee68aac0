import os
import logging
import streamlit as st
import bcrypt
from cryptography.fernet import Fernet
import config

logger = logging.getLogger(__name__)

def _cipher():
    key = os.environ.get("FERNET_KEY")
    if not key:
        raise RuntimeError("FERNET_KEY is not configured")
    return Fernet(key.encode())

def encrypt_data(data):
    """Encrypt a sensitive value (driver license number) with Fernet."""
    return _cipher().encrypt(data.encode()).decode()

def decrypt_data(encrypted_data):
    """Decrypt a value produced by encrypt_data."""
    return _cipher().decrypt(encrypted_data.encode()).decode()

def hash_password(password):
    """bcrypt hash suitable for the ADMIN_PASSWORD_HASH setting."""
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode()

def verify_admin_password(password):
    if not config.ADMIN_PASSWORD_HASH or not password:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), config.ADMIN_PASSWORD_HASH.encode('utf-8'))
    except ValueError:
        logger.error("ADMIN_PASSWORD_HASH is not a valid bcrypt hash.")
        return False

def admin_login():
    """Password gate for the admin portal. Returns True once the session is signed in."""
    if st.session_state.get('admin_authenticated'):
        return True

    st.subheader("Admin Sign In")
    with st.form(key="admin_login_form"):
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign In")

    if submitted:
        if verify_admin_password(password):
            st.session_state['admin_authenticated'] = True
            logger.info("Admin signed in.")
            st.rerun()
        else:
            logger.warning("Failed admin sign-in attempt.")
            st.error("Incorrect password.")
    return False

def admin_logout():
    st.session_state['admin_authenticated'] = False
