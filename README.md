# kafkaio

Building blocks for producing to Kafka from Python:

- **Wire encoding** (`kafkaio.wire`): big-endian integers, zig-zag
  varints, length-prefixed strings and bytes, arrays, and a `Decoder`
  that reads them back from a binary stream within a byte budget and
  raises `ShortReadError` when the budget or the stream runs out.
- **Messages and record batches** (`kafkaio.records`): `Message` and
  `Header`, the legacy message-set format (magic 1) with its CRC-32, and
  the v2 record batch format with its CRC-32C checksum (`crc32c`).
- **Requests** (`kafkaio.requests`): complete, length-framed fetch
  (v2, v5, v10), list-offsets (v1) and produce (v2, v3, v7) requests for
  a single topic partition, plus `RequestHeader` and `ApiKey`.
- **Consumer group sync** (`kafkaio.syncgroup`): `GroupAssignment`,
  `SyncGroupRequest`, `SyncGroupRequestAssignment` and
  `SyncGroupResponse`.
- **Compression** (`kafkaio.codecs`): `ZstdCodec`, codec code 4, default
  level 5.
- **Time helpers** (`kafkaio.timeutil`): millisecond timestamps and
  int32-clamped millisecond durations.
- **Statistics** (`kafkaio.stats`): `Counter`, `Gauge`, `Minimum`,
  `Maximum` and `Summary`, thread-safe and reset on snapshot.
- **Writer** (`kafkaio.writer`, `kafkaio.partition`): a `Writer` that
  spreads messages across the partitions of one topic, batches them per
  partition by count, by size in bytes and by time, and retries failed
  deliveries with backoff.

## Installing

```
pip install kafkaio
```

## What is not included

The package does not open network connections and has no broker
client, consumer or reader. The `Writer` talks to brokers through a
*dialer* object that you supply:

- `dialer.dial(broker)` returns a connection with
  `set_read_deadline(deadline)`, `read_partitions(topic)` (an iterable of
  objects with an `id` attribute) and `close()`; it is used to discover
  the topic's partitions.
- `dialer.dial_leader(broker, topic, partition)` returns a connection
  with `set_required_acks(acks)`, `set_write_deadline(deadline)`,
  `write_compressed_messages(codec, messages)` and `close()`; it is used
  to send each batch.
- An optional `client_id` attribute is reported in `Writer.stats()`.

The request encoders in `kafkaio.requests` produce the bytes such a
connection would send.

## Writing messages

```python
from kafkaio.records import Message
from kafkaio.writer import Writer, WriterConfig


class Partition:
    def __init__(self, id):
        self.id = id


class MemoryConnection:
    def __init__(self, log):
        self.log = log

    def set_read_deadline(self, deadline):
        pass

    def read_partitions(self, topic):
        return [Partition(0), Partition(1)]

    def set_required_acks(self, acks):
        pass

    def set_write_deadline(self, deadline):
        pass

    def write_compressed_messages(self, codec, messages):
        self.log.extend(messages)

    def close(self):
        pass


class MemoryDialer:
    client_id = "example"

    def __init__(self):
        self.log = []

    def dial(self, broker):
        return MemoryConnection(self.log)

    def dial_leader(self, broker, topic, partition):
        return MemoryConnection(self.log)


dialer = MemoryDialer()
config = WriterConfig(brokers=["localhost:9092"], topic="Topic-1",
                      dialer=dialer, batch_size=1)

with Writer(config) as writer:
    writer.write_messages(Message(key=b"Key-A", value=b"Hello World!"), timeout=10.0)
    print(writer.stats().messages)  # 1
```

`WriterConfig.validate()` raises `ValueError` if `brokers` is empty or
`topic` is missing, and `Writer` also raises `ValueError` when no
`dialer` is given. Fields left at zero get the defaults: 10 attempts, a
queue capacity of 100 messages, batches of 100 messages or 1048576
bytes, a one-second batch timeout, ten-second read and write timeouts,
and partitions refreshed every 15 seconds. Messages are balanced round
robin unless `balancer` is set to an object with
`balance(message, partitions)` returning one of the partitions.
`new_partition_writer` may replace the factory that creates a
`PartitionWriter` for each partition.

`write_messages` blocks until every message is written or the attempts
run out, then raises the last delivery error. With
`asynchronous=True` it only queues the messages. `timeout` (seconds or a
`timedelta`) bounds the whole call and raises `TimeoutError`.

A message larger than `batch_bytes` raises `MessageTooLargeError`; its
`message` attribute is that message and `remaining` holds the messages
after it, which were not queued. Writing after `close()` raises
`BrokenPipeError`, and `close()` flushes buffered messages before it
returns.

`Writer.stats()` returns a `WriterStats` snapshot: dials, writes,
messages, bytes, rebalances and errors since the previous call, dial,
write and wait times as `DurationStats`, retries and batch sizes as
`SummaryStats`, and the configuration in effect.

## Encoding by hand

```python
import io
from datetime import timedelta

from kafkaio.codecs import ZstdCodec
from kafkaio.records import Message
from kafkaio.requests import produce_request_v3
from kafkaio.wire import Decoder, encode_string, encode_varint

assert encode_varint(-1) == b"\x01"
assert encode_varint(128) == b"\x80\x02"

data = encode_string("topic")
assert Decoder(io.BytesIO(data), len(data)).read_string() == "topic"

request = produce_request_v3(
    ZstdCodec(), 1, "localhost", "topic", 0, timedelta(seconds=1), -1, None,
    Message(value=b"Hello World!"),
)
```

## Statistics

```python
from kafkaio.stats import Summary

latency = Summary()
for value in (3, 9, 6):
    latency.observe(value)
print(latency.snapshot())  # avg=6, min=3, max=9; the summary is then reset
```

## Running the tests

```
pip install "kafkaio[test]"
pytest
```