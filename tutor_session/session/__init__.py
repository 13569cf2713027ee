"""Session package initialization."""
from tutor_session.session.controller import SessionController
from tutor_session.session.state import SessionState, map_course_routing_mode, select_active_agent

__all__ = ['SessionController', 'SessionState', 'map_course_routing_mode', 'select_active_agent']
