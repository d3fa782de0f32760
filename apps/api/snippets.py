"""Starter client code for cataloged streams."""
from apps.api.errors import InvalidCounterError
from apps.api.schemas import COUNTER_TYPES, Stream


NODE_TEMPLATE = """const WebSocket = require('ws');
const ws = new WebSocket('{endpoint}');

ws.on('open', () => {{
  console.log('Connected');
}});

ws.on('message', (data) => {{
  console.log('Received:', data.toString());
}});

ws.on('error', (error) => {{
  console.error('Error:', error);
}});"""

PYTHON_TEMPLATE = """import websocket
import json

def on_message(ws, message):
    print(f"Received: {{message}}")

def on_error(ws, error):
    print(f"Error: {{error}}")

def on_open(ws):
    print("Connected")

ws = websocket.WebSocketApp(
    "{endpoint}",
    on_message=on_message,
    on_error=on_error,
    on_open=on_open
)
ws.run_forever()"""

VIBE_TEMPLATE = """Use this real-time WebSocket to build something cool: {endpoint}

Show live {name} data with beautiful visuals and animations."""

TEMPLATES = {
  "node": NODE_TEMPLATE,
  "python": PYTHON_TEMPLATE,
  "vibe": VIBE_TEMPLATE,
}


def render_snippet(kind: str, stream: Stream) -> str:
  """Render the starter snippet of the given kind for a stream."""
  if kind not in COUNTER_TYPES:
    raise InvalidCounterError(f"Invalid type: {kind}")
  return TEMPLATES[kind].format(endpoint=stream.endpoint, name=stream.name)
