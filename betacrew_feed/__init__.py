"""
BetaCrew Exchange Client
========================

A client for the BetaCrew exchange's binary trade feed over TCP.

Streams every trade packet from the server, detects gaps in the packet
sequence and recovers each missing packet with a dedicated resend request.

Modules:
    - decoder: Request frame encoding and 17-byte packet decoding
    - stream_decoder: Reassembles packets from arbitrarily chunked TCP data
    - sequence_tracker: Observed sequences and gap computation
    - data_collector: Sequence-keyed packet store
    - connection: TCP socket setup and teardown
    - packet_receiver: One request/response exchange per connection
    - recovery: Stream, gap analysis and sequential recovery
    - saver: JSON/CSV output
    - main: Application orchestration
"""

__version__ = '0.1.0'
__author__ = 'BetaCrew Integration Team'
