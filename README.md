# tinykv

A small in-memory key-value server. It speaks a compact length-prefixed
binary protocol over TCP. It stores plain string values and sorted sets,
and it expires keys after a given time.

## Install

    pip install .

To run the tests:

    pip install .[test]
    pytest

## Running the server

    tinykv-server

By default the server listens on port 1234 on all interfaces. Options:

- `--host` – address to bind (default `0.0.0.0`)
- `--port` – port to listen on (default `1234`)
- `--threads` – worker threads used to free very large sorted sets in the
  background (default `4`)

A connection that stays idle for 5 seconds is closed. Keys whose TTL has
passed are removed by the same event loop.

## Commands

Command names are case-insensitive.

| Command | Reply |
| --- | --- |
| `keys` | array of all keys |
| `get key` | the string value, or nil |
| `set key value` | nil |
| `del key` | 1 if the key existed, else 0 |
| `pexpire key ms` | 1 if the key exists, else 0; a negative `ms` removes the TTL |
| `pttl key` | milliseconds left; -1 if there is no TTL, -2 if there is no key |
| `zadd zset score name` | 1 if the name was added, 0 if its score was updated |
| `zrem zset name` | 1 if the name was removed, else 0 |
| `zscore zset name` | the score, or nil |
| `zquery zset score name offset limit` | a flat array of name and score pairs, starting at the first pair `>= (score, name)` and moved by `offset` |

An unknown command, or a command with the wrong number of arguments, returns
an error reply. A reply that would not fit in a 4096-byte message is
replaced by a "response is too big" error.

## Wire format

Every message is a 4-byte little-endian length followed by that many bytes.
A request is an argument count, followed by each argument as a length and
its bytes. Each reply value starts with a one-byte tag from `SerType`:
nil, error (code and message), string, 64-bit integer, double, or array
(count, then that many values).

`tinykv.protocol` builds and reads these messages:

```python
from tinykv.protocol import encode_request, decode

payload = encode_request(["set", "greeting", "hello"])
```

`encode_request` gives the request payload without the outer length prefix.
`decode` turns the bytes of a reply back into Python values: nil becomes
`None`, strings `bytes`, arrays lists and errors `ErrorReply`. Malformed
data raises `ProtocolError`.

## Using the data structures directly

```python
from tinykv.commands import Database
from tinykv.protocol import decode

db = Database()
db.execute(["zadd", "scores", "87.5", "Alice"])
db.execute(["zadd", "scores", "89", "Bob"])
reply = decode(db.execute(["zquery", "scores", "0", "", "0", "10"]))
# [b'Alice', 87.5, b'Bob', 89.0]
```

`tinykv.zset.ZSet` is a sorted set. It pairs a hash map for lookup by name
with an order-statistic AVL tree for range queries. The `tinykv.hashtable`,
`tinykv.avl`, `tinykv.heap` and `tinykv.dlist` modules hold the building
blocks, and `tinykv.thread_pool.ThreadPool` runs queued jobs on worker
threads.

## Limits

All data lives in memory only: nothing is written to disk, and everything
is lost when the server stops.