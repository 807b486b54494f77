"""Realtime audio path for Twilio Media Streams calls.

PSTN -> Twilio -> <Connect><Stream> -> websocket media server (this package):
mu-law frames in, VAD turn segmentation, paced mu-law frames out.
"""
