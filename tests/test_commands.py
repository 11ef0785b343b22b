import math

import pytest

from tinykv.commands import Database, INT64_MAX, parse_float, parse_int
from tinykv.protocol import ErrorCode, ErrorReply, decode


class _Clock:
    def __init__(self, now=5_000_000):
        self.now = now

    def __call__(self):
        return self.now


class _Pool:
    def __init__(self):
        self.jobs = []

    def submit(self, func, *args):
        self.jobs.append((func, args))


def run(db, *args):
    return decode(db.execute(list(args)))


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def db(clock):
    return Database(clock=clock)


@pytest.mark.parametrize(
    "text,expected",
    [("1.5", 1.5), ("  2", 2.0), ("-3e2", -300.0), (b"0.25", 0.25), ("", 0.0)],
)
def test_parse_float_valid(text, expected):
    assert parse_float(text) == expected


def test_parse_float_infinity_and_hex():
    assert parse_float("inf") == math.inf
    assert parse_float("-Infinity") == -math.inf
    assert parse_float("0x1p0") == 1.0


@pytest.mark.parametrize("text", ["nan", "abc", "1.5 ", "1e", "1_0", " ", "1\x002"])
def test_parse_float_invalid(text):
    with pytest.raises(ValueError):
        parse_float(text)


@pytest.mark.parametrize("text,expected", [("42", 42), ("-7", -7), (" 3", 3), ("", 0)])
def test_parse_int_valid(text, expected):
    assert parse_int(text) == expected


def test_parse_int_clamps():
    assert parse_int("99999999999999999999") == INT64_MAX
    assert parse_int("-99999999999999999999") == -INT64_MAX - 1


@pytest.mark.parametrize("text", ["1.5", "12a", "abc", "4 "])
def test_parse_int_invalid(text):
    with pytest.raises(ValueError):
        parse_int(text)


def test_set_get_round_trip(db):
    assert run(db, "set", "k", "v") is None
    assert run(db, "get", "k") == b"v"
    assert run(db, "set", "k", "w") is None
    assert run(db, "get", "k") == b"w"


def test_get_missing(db):
    assert run(db, "get", "nope") is None


def test_commands_are_case_insensitive(db):
    run(db, "SET", "k", "v")
    assert run(db, "Get", "k") == b"v"


def test_keys_lists_every_key(db):
    run(db, "set", "a", "1")
    run(db, "zadd", "b", "1", "m")
    assert sorted(run(db, "keys")) == [b"a", b"b"]


def test_del(db):
    run(db, "set", "k", "v")
    assert run(db, "del", "k") == 1
    assert run(db, "del", "k") == 0
    assert run(db, "get", "k") is None


@pytest.mark.parametrize("cmd", [["nope"], ["get"], ["set", "k"], ["keys", "x"], []])
def test_unknown_command(db, cmd):
    assert run(db, *cmd) == ErrorReply(ErrorCode.UNKNOWN, "Unknown cmd")


def test_type_errors(db):
    run(db, "set", "s", "v")
    run(db, "zadd", "z", "1", "m")
    assert run(db, "get", "z") == ErrorReply(ErrorCode.TYPE, "expect string type")
    assert run(db, "set", "z", "v") == ErrorReply(ErrorCode.TYPE, "expect string type")
    assert run(db, "zadd", "s", "1", "m") == ErrorReply(ErrorCode.TYPE, "expect zset")
    assert run(db, "zscore", "s", "m") == ErrorReply(ErrorCode.TYPE, "expect zset")
    assert run(db, "zrem", "s", "m") == ErrorReply(ErrorCode.TYPE, "expect zset")
    assert run(db, "zquery", "s", "0", "", "0", "10") == ErrorReply(ErrorCode.TYPE, "expect zset")


def test_zadd_zscore_zrem(db):
    assert run(db, "zadd", "z", "1.5", "a") == 1
    assert run(db, "zadd", "z", "2.5", "a") == 0
    assert run(db, "zscore", "z", "a") == 2.5
    assert run(db, "zscore", "z", "b") is None
    assert run(db, "zrem", "z", "a") == 1
    assert run(db, "zrem", "z", "a") == 0
    assert run(db, "zscore", "z", "a") is None


def test_zset_commands_on_missing_key(db):
    assert run(db, "zscore", "none", "a") is None
    assert run(db, "zrem", "none", "a") is None
    assert run(db, "zquery", "none", "0", "", "0", "10") == []


def test_zadd_bad_score(db):
    for score in ("abc", "nan"):
        assert run(db, "zadd", "z", score, "a") == ErrorReply(ErrorCode.ARG, "expect fp number")
    assert run(db, "get", "z") is None


def test_zquery(db):
    for score, name in (("1", "a"), ("2", "b"), ("3", "c")):
        run(db, "zadd", "z", score, name)
    assert run(db, "zquery", "z", "1", "", "0", "10") == [b"a", 1.0, b"b", 2.0, b"c", 3.0]
    assert run(db, "zquery", "z", "2", "", "0", "10") == [b"b", 2.0, b"c", 3.0]
    assert run(db, "zquery", "z", "1", "", "1", "2") == [b"b", 2.0]
    assert run(db, "zquery", "z", "3", "", "-1", "4") == [b"b", 2.0, b"c", 3.0]
    assert run(db, "zquery", "z", "1", "", "0", "0") == []
    assert run(db, "zquery", "z", "1", "", "5", "10") == []


def test_zquery_orders_equal_scores_by_name(db):
    for name in ("c", "a", "b"):
        run(db, "zadd", "z", "1", name)
    assert run(db, "zquery", "z", "1", "b", "0", "10") == [b"b", 1.0, b"c", 1.0]


def test_zquery_bad_args(db):
    run(db, "zadd", "z", "1", "a")
    assert run(db, "zquery", "z", "x", "", "0", "1") == ErrorReply(ErrorCode.ARG, "expect fp number")
    assert run(db, "zquery", "z", "1", "", "x", "1") == ErrorReply(ErrorCode.ARG, "expect int")
    assert run(db, "zquery", "z", "1", "", "0", "1.5") == ErrorReply(ErrorCode.ARG, "expect int")


def test_pttl_states(db, clock):
    assert run(db, "pttl", "k") == -2
    run(db, "set", "k", "v")
    assert run(db, "pttl", "k") == -1
    assert run(db, "pexpire", "k", "1000") == 1
    assert run(db, "pttl", "k") == 1000
    clock.now += 400_000
    remaining = run(db, "pttl", "k")
    assert 0 < remaining < 1000
    clock.now += 10_000_000
    assert run(db, "pttl", "k") == 0


def test_pexpire_missing_and_bad_arg(db):
    assert run(db, "pexpire", "k", "10") == 0
    run(db, "set", "k", "v")
    assert run(db, "pexpire", "k", "ten") == ErrorReply(ErrorCode.ARG, "expect int64")


def test_negative_ttl_removes_expiry(db):
    run(db, "set", "k", "v")
    run(db, "pexpire", "k", "1000")
    assert db.next_expiry() is not None
    run(db, "pexpire", "k", "-1")
    assert run(db, "pttl", "k") == -1
    assert db.next_expiry() is None


def test_expire_keys_removes_due_keys(db, clock):
    run(db, "set", "soon", "1")
    run(db, "set", "late", "2")
    run(db, "set", "never", "3")
    run(db, "pexpire", "soon", "10")
    run(db, "pexpire", "late", "10000")
    assert db.next_expiry() > clock.now
    clock.now += 1_000_000
    assert db.expire_keys(clock.now) == 1
    assert run(db, "get", "soon") is None
    assert run(db, "get", "late") == b"2"
    clock.now += 100_000_000
    assert db.expire_keys() == 1
    assert run(db, "get", "late") is None
    assert run(db, "get", "never") == b"3"
    assert db.next_expiry() is None


def test_del_clears_expiry(db):
    run(db, "set", "k", "v")
    run(db, "pexpire", "k", "1000")
    run(db, "del", "k")
    assert db.next_expiry() is None


def test_expire_keys_is_bounded_per_call(db, clock):
    total = 2500
    for i in range(total):
        key = f"k{i}"
        run(db, "set", key, "v")
        run(db, "pexpire", key, "0")
    first = db.expire_keys(clock.now + 1)
    second = db.expire_keys(clock.now + 1)
    assert first < total
    assert first + second == total
    assert run(db, "keys") == []


def test_response_too_big(db):
    for i in range(800):
        run(db, "set", f"key{i:04d}", "v")
    assert run(db, "keys") == ErrorReply(ErrorCode.TOO_BIG, "response is too big")


def test_large_zset_deleted_on_pool(clock):
    pool = _Pool()
    db = Database(clock=clock, pool=pool)
    for i in range(10001):
        db.execute([b"zadd", b"z", b"1", f"m{i}".encode()])
    assert run(db, "del", "z") == 1
    assert len(pool.jobs) == 1
    assert run(db, "get", "z") is None


def test_small_zset_deleted_inline(clock):
    pool = _Pool()
    db = Database(clock=clock, pool=pool)
    run(db, "zadd", "z", "1", "a")
    assert run(db, "del", "z") == 1
    assert pool.jobs == []