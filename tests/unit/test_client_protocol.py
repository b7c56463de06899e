# pylint: disable=missing-module-docstring,missing-function-docstring

from facts.reconcile import Fact
from protocol import messages
from protocol.messages import decode_client_frame
from transcript.accumulator import TranscriptSegment


def test_control_json_in_text_or_binary_frames():
    for payload in ('{"type": "end"}', b'{"type": "flush"}'):
        frame = decode_client_frame(payload)
        assert frame.audio is None
        assert frame.control is not None

    assert decode_client_frame('{"type":"end"}').control_type == "end"
    assert decode_client_frame(b'{"type":"flush"}').control_type == "flush"


def test_non_json_frames_are_audio():
    audio = b"\x1aE\xdf\xa3webm-header"
    assert decode_client_frame(audio).audio == audio

    # "{"-prefixed bytes that are not JSON stay audio
    garbage = b"{\x00\x01\x02"
    assert decode_client_frame(garbage).audio == garbage

    # JSON that is not an object is not control either
    assert decode_client_frame("[1, 2]").audio == b"[1, 2]"


def test_unknown_control_type_is_still_control():
    frame = decode_client_frame('{"type": "pause"}')
    assert frame.control == {"type": "pause"}
    assert frame.control_type == "pause"

    assert decode_client_frame('{"kind": 1}').control_type is None


def test_server_message_shapes():
    assert messages.session_started("int-1") == {"type": "session_started", "interactionId": "int-1"}
    assert messages.config_accepted() == {"type": "CONFIG_ACCEPTED"}
    assert messages.error("bad") == {"type": "error", "message": "bad"}
    assert messages.flushed() == {"type": "flushed"}
    assert messages.usage(0.25) == {"type": "usage", "credits": 0.25}
    assert messages.ended() == {"type": "ended"}

    seg = TranscriptSegment(id="a-0", text="hi", is_final=True)
    assert messages.transcript(seg)["data"]["isFinal"] is True

    msg = messages.facts([Fact(id="f1", text="x", is_discarded=True)])
    assert msg["type"] == "facts"
    assert msg["facts"][0]["id"] == "f1"
    assert msg["facts"][0]["isDiscarded"] is True
