from flask import Blueprint

from docconnect_server.utils.helpers import respond_success, respond_error
from docconnect_server.websocket.hub import get_websocket_hub

health_bp = Blueprint('health', __name__, url_prefix='/api/socket')


@health_bp.route('/health', methods=['GET'])
def socket_health():
    """Connection count, online users and offline queue stats. No auth."""
    hub = get_websocket_hub()
    if hub is None:
        return respond_error('Realtime gateway not initialized', status=503)
    return respond_success(hub.health())
