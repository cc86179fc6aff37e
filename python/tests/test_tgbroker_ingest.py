import io
import queue

from python.tgbroker.ingest import END_OF_STREAM, EventIngester


def _drain(events):
    items = []
    while True:
        item = events.get(timeout=1.0)
        if item is END_OF_STREAM:
            return items
        items.append(item)


def test_ingester_queues_decoded_payloads_in_order():
    lines = [
        b"Telegram-cli banner\n",
        b'{"event":"message","seq":1}\n',
        b"noise without braces\n",
        b'[12:00] {"event":"message","seq":2}\n',
        b'{"event": broken\n',
        b'{"event":"message","seq":3}',
    ]
    events = queue.Queue()
    ingester = EventIngester(io.BytesIO(b"".join(lines)), events)
    ingester.run()

    assert [item["seq"] for item in _drain(events)] == [1, 2, 3]
    assert ingester.decoded == 3
    assert ingester.discarded == 3


def test_ingester_thread_stops_at_end_of_stream():
    events = queue.Queue()
    ingester = EventIngester(io.BytesIO(b'{"seq": 1}\n'), events)
    ingester.start()
    ingester.join(1.0)
    assert not ingester.running
    assert _drain(events) == [{"seq": 1}]


def test_ingester_stops_on_closed_stream():
    stream = io.BytesIO(b'{"seq": 1}\n')
    stream.close()
    events = queue.Queue()
    EventIngester(stream, events).run()
    assert events.get_nowait() is END_OF_STREAM
