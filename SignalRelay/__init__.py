r"""
   _____ _                   ______      __
  / ___/(_)___ _____  ____ _/ / __ \___  / /___ ___  __
  \__ \/ / __ `/ __ \/ __ `/ / /_/ / _ \/ / __ `/ / / /
 ___/ / / /_/ / / / / /_/ / / _, _/  __/ / /_/ / /_/ /
/____/_/\__, /_/ /_/\__,_/_/_/ |_|\___/_/\__,_/\__, /
       /____/                                 /____/

SignalRelay Project - A WebSocket signaling relay for WebRTC chat clients.

Clients connect, receive a numeric id, claim a unique username and then
exchange chat text and opaque WebRTC negotiation payloads through the relay.
"""

__version__ = "1.0.0"
