from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from ..errors import CommandSyntaxError, NotFoundError
from ..session import Session
from ..utils import parse_delta, parse_instant, parse_int

_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)$")


@dataclass(frozen=True)
class Args:
    """Positional arguments plus ``-x value`` / ``-x`` flags of one command line."""

    name: str
    args: List[str]
    flags: Dict[str, Optional[str]] = field(default_factory=dict)

    def __call__(self, flag: str) -> Optional[str]:
        return self.flags.get(flag)

    def has(self, flag: str) -> bool:
        return flag in self.flags


@dataclass(frozen=True)
class Command:
    name: str
    fn: Callable[[Session, Args], Any]
    usage: str
    help: str
    value_flags: FrozenSet[str] = frozenset()
    bool_flags: FrozenSet[str] = frozenset()


def parse_args(name: str, tokens: Sequence[str], value_flags: FrozenSet[str], bool_flags: FrozenSet[str]) -> Args:
    """Split ``tokens`` into positionals and flags.

    ``--`` ends option parsing. Once a positional has been seen, a dash token
    that is not one of the command's flags is taken as a positional too, so
    values such as ``-X1`` can appear in conditions and messages.
    """
    args: List[str] = []
    flags: Dict[str, Optional[str]] = {}
    it = iter(tokens)
    for token in it:
        if token == "--":
            args.extend(it)
            break
        if token in value_flags:
            value = next(it, None)
            if value is None:
                raise CommandSyntaxError(f"{name}: option {token} requires a value")
            flags[token] = value
        elif token in bool_flags:
            flags[token] = None
        elif token.startswith("-") and len(token) > 1 and not args and not _NUMBER.match(token):
            raise CommandSyntaxError(f"{name}: unknown option {token}")
        else:
            args.append(token)
    return Args(name=name, args=args, flags=flags)


def _syntax(a: Args, usage: str) -> CommandSyntaxError:
    return CommandSyntaxError(f"{a.name} {usage}")


def _partition(value: str) -> int:
    return parse_int("partition", value)


def _offset(value: str) -> int:
    return parse_int("offset", value)


def _topic_and_partition(s: Session, a: Args) -> Tuple[str, int]:
    if not a.args:
        c = s.require_cursor()
        topic, partition = c.topic, c.partition
    elif len(a.args) == 1:
        topic, partition = a.args[0], 0
    elif len(a.args) == 2:
        topic, partition = a.args[0], _partition(a.args[1])
    else:
        raise _syntax(a, "[topic] [partition]")
    if a("-p") is not None:
        partition = _partition(a("-p"))
    return topic, partition


def _topic_partition_and_offset(s: Session, a: Args) -> Tuple[str, int, int]:
    if not a.args:
        c = s.require_cursor()
        topic, partition, offset = c.topic, c.partition, c.offset
    elif len(a.args) == 1:
        c = s.require_cursor()
        topic, partition, offset = c.topic, c.partition, _offset(a.args[0])
    elif len(a.args) == 2 and a.has("-ts"):
        topic, partition, offset = a.args[0], _partition(a.args[1]), 0
    elif len(a.args) == 3:
        topic, partition, offset = a.args[0], _partition(a.args[1]), _offset(a.args[2])
    else:
        raise _syntax(a, "[topic partition] [offset]")
    if a("-p") is not None:
        partition = _partition(a("-p"))
    return topic, partition, offset


def _message_options(a: Args) -> Dict[str, Any]:
    return {"decoder_ref": a("-a"), "output_url": a("-o")}


# -- handlers ---------------------------------------------------------------


def kls(s: Session, a: Args):
    if len(a.args) > 1:
        raise _syntax(a, "[prefix] [-l]")
    return s.topics(a.args[0] if a.args else None, detailed=a.has("-l"))


def kcursor(s: Session, a: Args):
    return s.cursors.list(a("-t") or (a.args[0] if a.args else None))


def kswitch(s: Session, a: Args):
    if len(a.args) != 1:
        raise _syntax(a, "<topic>")
    if not s.cursors.switch_current(a.args[0]):
        raise NotFoundError(f"No cursor exists for topic {a.args[0]!r}")
    return None


def kfirst(s: Session, a: Args):
    topic, partition = _topic_and_partition(s, a)
    return s.first_message(topic, partition, **_message_options(a))


def klast(s: Session, a: Args):
    topic, partition = _topic_and_partition(s, a)
    return s.last_message(topic, partition, **_message_options(a))


def kget(s: Session, a: Args):
    topic, partition, offset = _topic_partition_and_offset(s, a)
    instant = parse_instant(a("-ts")) if a("-ts") is not None else None
    return s.get_message(topic, partition, offset, instant=instant, **_message_options(a))


def kgetkey(s: Session, a: Args):
    topic, partition, offset = _topic_partition_and_offset(s, a)
    return s.message_key(topic, partition, offset)


def kgetsize(s: Session, a: Args):
    topic, partition, offset = _topic_partition_and_offset(s, a)
    return s.message_size(topic, partition, offset)


def kgetminmax(s: Session, a: Args):
    if len(a.args) == 2:
        c = s.require_cursor()
        topic, partition = c.topic, c.partition
        start, end = _offset(a.args[0]), _offset(a.args[1])
    elif len(a.args) == 4:
        topic, partition = a.args[0], _partition(a.args[1])
        start, end = _offset(a.args[2]), _offset(a.args[3])
    else:
        raise _syntax(a, "[topic partition] startOffset endOffset")
    return s.message_size_range(topic, partition, start, end)


def knext(s: Session, a: Args):
    if len(a.args) > 1:
        raise _syntax(a, "[delta]")
    delta = parse_delta(a.args[0]) if a.args else None
    return s.next_message(delta, **_message_options(a))


def kprev(s: Session, a: Args):
    if len(a.args) > 1:
        raise _syntax(a, "[delta]")
    delta = parse_delta(a.args[0]) if a.args else None
    return s.previous_message(delta, **_message_options(a))


def kcount(s: Session, a: Args):
    return s.count(a.args, topic=a("-t"), decoder_ref=a("-a"))


def kfindone(s: Session, a: Args):
    return s.find_one(a.args, topic=a("-t"), **_message_options(a))


def kfindnext(s: Session, a: Args):
    partition = _partition(a("-p")) if a("-p") is not None else None
    return s.find_next(a.args, topic=a("-t"), partition=partition, **_message_options(a))


def kfind(s: Session, a: Args):
    if a("-o") is None:
        raise CommandSyntaxError("kfind: output source URL expected (-o topic:<name>)")
    return s.find(a.args, a("-o"), topic=a("-t"), decoder_ref=a("-a"))


def kput(s: Session, a: Args):
    if len(a.args) == 2:
        topic, key, message = s.require_cursor().topic, a.args[0], a.args[1]
    elif len(a.args) == 3:
        topic, key, message = a.args
    else:
        raise _syntax(a, "[topic] key message")
    s.publish(topic, key, message)
    return None


def kcommit(s: Session, a: Args):
    if len(a.args) == 2:
        c = s.require_cursor()
        topic, partition, group_id, offset = c.topic, c.partition, a.args[0], _offset(a.args[1])
    elif len(a.args) == 4:
        topic, partition, group_id, offset = a.args[0], _partition(a.args[1]), a.args[2], _offset(a.args[3])
    else:
        raise _syntax(a, "[topic partition] groupId offset [-m metadata]")
    s.commit_offset(topic, partition, group_id, offset, a("-m"))
    return None


def kfetch(s: Session, a: Args):
    if len(a.args) == 1:
        c = s.require_cursor()
        topic, partition, group_id = c.topic, c.partition, a.args[0]
    elif len(a.args) == 3:
        topic, partition, group_id = a.args[0], _partition(a.args[1]), a.args[2]
    else:
        raise _syntax(a, "[topic partition] groupId")
    return s.fetch_offset(topic, partition, group_id)


def kreset(s: Session, a: Args):
    if len(a.args) == 1:
        topic, group_id = s.require_cursor().topic, a.args[0]
    elif len(a.args) == 2:
        topic, group_id = a.args
    else:
        raise _syntax(a, "[topic] groupId")
    return s.reset_group(topic, group_id)


def kinbound(s: Session, a: Args):
    if len(a.args) > 1:
        raise _syntax(a, "[prefix] [-w seconds]")
    wait_s = parse_int("wait time in seconds", a("-w")) if a("-w") is not None else None
    return s.inbound(a.args[0] if a.args else None, wait_s)


def kstats(s: Session, a: Args):
    if len(a.args) > 3:
        raise _syntax(a, "[topic] [beginPartition] [endPartition]")
    topic = a.args[0] if a.args else None
    begin = _partition(a.args[1]) if len(a.args) > 1 else None
    end = _partition(a.args[2]) if len(a.args) > 2 else None
    return s.statistics(topic, begin, end)


def kfetchsize(s: Session, a: Args):
    if not a.args:
        return s.fetch_size
    if len(a.args) > 1:
        raise _syntax(a, "[fetchSize]")
    s.fetch_size = parse_int("fetch size", a.args[0])
    return None


def kbrokers(s: Session, a: Args):
    return s.brokers()


def kconsumers(s: Session, a: Args):
    return s.consumers(topic_prefix=a("-t"), group_prefix=a("-c"))


_MESSAGE_FLAGS = frozenset({"-a", "-o"})
_SEARCH_FLAGS = frozenset({"-a", "-o", "-t"})

COMMANDS: Dict[str, Command] = {
    c.name: c
    for c in [
        Command("kbrokers", kbrokers, "", "Returns a list of the cluster's brokers"),
        Command("kcommit", kcommit, "[topic partition] groupId offset [-m metadata]",
                "Commits the offset for a given topic and group", frozenset({"-m"})),
        Command("kconsumers", kconsumers, "[-t topicPrefix] [-c groupPrefix]",
                "Returns consumer group offsets and lag", frozenset({"-t", "-c"})),
        Command("kcount", kcount, "field operator value [and ...]",
                "Counts the messages matching a given condition", frozenset({"-a", "-t"})),
        Command("kcursor", kcursor, "[topicPrefix]", "Displays the message cursor(s)", frozenset({"-t"})),
        Command("kfetch", kfetch, "[topic partition] groupId", "Retrieves the offset for a given topic and group"),
        Command("kfetchsize", kfetchsize, "[fetchSize]", "Retrieves or sets the default fetch size for all Kafka queries"),
        Command("kfind", kfind, "field operator value [and ...] -o topic:<name>",
                "Finds messages matching a given condition and exports them to a topic", _SEARCH_FLAGS),
        Command("kfindone", kfindone, "field operator value [and ...]",
                "Returns the first occurrence of a message matching a given condition", _SEARCH_FLAGS),
        Command("kfindnext", kfindnext, "field operator value [and ...]",
                "Returns the next message matching a given condition from the cursor",
                _SEARCH_FLAGS | {"-p"}),
        Command("kfirst", kfirst, "[topic] [partition]", "Returns the first message for a given topic",
                _MESSAGE_FLAGS | {"-p"}),
        Command("kget", kget, "[topic partition] [offset] [-ts instant]",
                "Retrieves the message at the specified offset for a given topic partition",
                _MESSAGE_FLAGS | {"-p", "-ts"}),
        Command("kgetkey", kgetkey, "[topic partition] [offset]",
                "Retrieves the key of the message at the specified offset", frozenset({"-p"})),
        Command("kgetminmax", kgetminmax, "[topic partition] startOffset endOffset",
                "Retrieves the smallest and largest message sizes for a range of offsets"),
        Command("kgetsize", kgetsize, "[topic partition] [offset]",
                "Retrieves the size of the message at the specified offset", frozenset({"-p"})),
        Command("kinbound", kinbound, "[topicPrefix] [-w seconds]",
                "Retrieves a list of topics with new messages (since last query)", frozenset({"-w"})),
        Command("klast", klast, "[topic] [partition]", "Returns the last message for a given topic",
                _MESSAGE_FLAGS | {"-p"}),
        Command("kls", kls, "[topicPrefix] [-l]", "Lists all existing topics", bool_flags=frozenset({"-l"})),
        Command("knext", knext, "[delta]", "Attempts to retrieve the next message", _MESSAGE_FLAGS),
        Command("kprev", kprev, "[delta]", "Attempts to retrieve the message at the previous offset", _MESSAGE_FLAGS),
        Command("kput", kput, "[topic] key message", "Publishes a message to a topic"),
        Command("kreset", kreset, "[topic] groupId", "Sets a consumer group to the first offset of all partitions"),
        Command("kstats", kstats, "[topic] [beginPartition] [endPartition]",
                "Returns the partition details for a given topic"),
        Command("kswitch", kswitch, "<topic>", "Switches the currently active topic cursor"),
    ]
}
