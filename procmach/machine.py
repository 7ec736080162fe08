"""An actor-style virtual machine: values, heaps, mailboxes, processes and a scheduler."""

from __future__ import annotations

import itertools
import sys
from collections import deque
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Iterable, Optional, Sequence, Union

I32_MIN = -(2**31)
I32_MAX = 2**31 - 1


class MachineError(RuntimeError):
    """Raised when a process or the scheduler hits an unrecoverable fault."""


_PID_COUNTER = itertools.count()


@dataclass(frozen=True, order=True, repr=False)
class Pid:
    """Process identifier."""

    value: int

    @classmethod
    def next(cls) -> Pid:
        """Return a fresh, never reused identifier."""
        return cls(next(_PID_COUNTER))

    def __repr__(self) -> str:
        return f"PID#[{self.value:#06x}]"


@dataclass(frozen=True, order=True, repr=False)
class Atom:
    """Interned symbolic constant."""

    value: int

    def __repr__(self) -> str:
        return f"Atom({self.value})"


ATOM_EXIT = Atom(0)
ATOM_NORMAL = Atom(1)
ATOM_EXPECTED_VALUE = Atom(2)


@dataclass(frozen=True)
class HeapHandle:
    """Reference to a value living in a process heap."""

    index: int


Value = Union[Pid, int, Atom, HeapHandle]
HeapValue = Union[str, tuple]


class ProcessState(Enum):
    RUNNABLE = 1 << 0
    RUNNING = 1 << 1
    WAITING = 1 << 2
    EXITING = 1 << 3

    def is_runnable(self) -> bool:
        """True for states in which the process may execute instructions."""
        return (self.value & 0b11) != 0


class Op(Enum):
    DBG_STACK = "DbgStack"
    DBG_DROP = "DbgDrop"
    PUSH_INT = "PushInt"
    PUSH_PID = "PushPid"
    MAKE_TUPLE = "MakeTuple"
    GET_TUPLE = "GetTuple"
    ADD = "Add"
    SUB = "Sub"
    MUL = "Mul"
    DIV = "Div"
    THIS = "This"
    LINK = "Link"
    MONITOR = "Monitor"
    SEND = "Send"
    RECEIVE = "Receive"
    STORE = "Store"
    LOAD = "Load"
    GOTO = "Goto"
    RETURN = "Return"
    EXIT_REASON = "ExitReason"
    EXIT = "Exit"


@dataclass(frozen=True)
class Instruction:
    """One machine instruction with its optional operand."""

    op: Op
    arg: Any = None

    def __str__(self) -> str:
        if self.arg is None:
            return self.op.value
        return f"{self.op.value}({self.arg!r})"


@dataclass
class Frame:
    """A code block with its local variable slots."""

    code: list
    locals: list = field(default_factory=list)
    ip: int = 0


class Mailbox:
    """FIFO queue of incoming messages."""

    def __init__(self) -> None:
        self._queue: deque = deque()

    def send(self, message: Value) -> None:
        self._queue.append(message)

    def receive(self) -> Optional[Value]:
        """Pop the oldest message, or None when empty."""
        return self._queue.popleft() if self._queue else None

    def __len__(self) -> int:
        return len(self._queue)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _debug_value(value: Value) -> str:
    if isinstance(value, Pid):
        return f"Pid({value!r})"
    if isinstance(value, Atom):
        return f"Atom({value!r})"
    if isinstance(value, HeapHandle):
        return f"Heap(HeapHandle {{ index: {value.index} }})"
    return f"Int({value})"


class Heap:
    """Per-process storage for strings and tuples."""

    def __init__(self) -> None:
        self.memory: list = []

    def get(self, handle: HeapHandle) -> HeapValue:
        try:
            return self.memory[handle.index]
        except IndexError:
            raise MachineError(f"invalid heap handle {handle.index}") from None

    def _allocate(self, item: HeapValue) -> HeapHandle:
        self.memory.append(item)
        return HeapHandle(len(self.memory) - 1)

    def allocate_string(self, text: str) -> HeapHandle:
        return self._allocate(str(text))

    def allocate_tuple(self, values: Iterable[Value]) -> HeapHandle:
        return self._allocate(tuple(values))

    def deep_clone_to(self, value: Value, other: Heap) -> Value:
        """Copy value, with everything it references, into another heap."""
        if not isinstance(value, HeapHandle):
            return value
        item = self.get(value)
        if isinstance(item, str):
            return other.allocate_string(item)
        return other.allocate_tuple(self.deep_clone_to(v, other) for v in item)

    def format_value(self, value: Value) -> str:
        """Render a value the way the debug-drop instruction prints it."""
        if not isinstance(value, HeapHandle):
            return _debug_value(value)
        item = self.get(value)
        if isinstance(item, str):
            return item
        return "{" + ", ".join(self.format_value(v) for v in item) + "}"


class Weight(IntEnum):
    NONE = 0
    ONE = 1
    TWO = 2
    THREE = 3
    FOUR = 4


def _check_i32(result: int, op: Op) -> int:
    if not I32_MIN <= result <= I32_MAX:
        raise MachineError(f"attempt to {op.value.lower()} with overflow")
    return result


def _arith(op: Op, lhs: int, rhs: int) -> int:
    if op is Op.ADD:
        result = lhs + rhs
    elif op is Op.SUB:
        result = lhs - rhs
    elif op is Op.MUL:
        result = lhs * rhs
    else:
        if rhs == 0:
            raise MachineError("attempt to divide by zero")
        quotient = abs(lhs) // abs(rhs)
        result = quotient if (lhs < 0) == (rhs < 0) else -quotient
    return _check_i32(result, op)


@dataclass(eq=False)
class Process:
    """A lightweight process executing instructions of its top frame."""

    pid: Pid
    frames: list = field(default_factory=list)
    scheduler: Optional[Scheduler] = None
    ip: int = 0
    state: ProcessState = ProcessState.RUNNABLE
    stack: list = field(default_factory=list)
    mailbox: Mailbox = field(default_factory=Mailbox)
    links: list = field(default_factory=list)
    monitors: list = field(default_factory=list)
    heap: Heap = field(default_factory=Heap)
    exit_reason: Optional[Value] = None

    def fetch(self) -> Instruction:
        """Return the instruction at the instruction pointer and advance it."""
        if not self.frames:
            raise MachineError("no frames to execute")
        code = self.frames[-1].code
        if not 0 <= self.ip < len(code):
            raise MachineError(f"instruction pointer {self.ip} out of range")
        instruction = code[self.ip]
        self.ip += 1
        return instruction

    def rewind(self) -> None:
        """Step the instruction pointer back by one."""
        if self.ip == 0:
            raise MachineError("cannot rewind past the first instruction")
        self.ip -= 1

    def _fail_expected_value(self) -> Weight:
        self.exit_reason = ATOM_EXPECTED_VALUE
        self.state = ProcessState.EXITING
        return Weight.NONE

    def _pop(self, what: str) -> Value:
        if not self.stack:
            raise MachineError(f"expected {what}")
        return self.stack.pop()

    def _pop_pid(self) -> Pid:
        value = self._pop("pid")
        if not isinstance(value, Pid):
            raise MachineError("expected pid")
        return value

    def _pop_int(self, what: str) -> int:
        value = self._pop(what)
        if not _is_int(value):
            raise MachineError("not an integer")
        return value

    def _scheduler(self) -> Scheduler:
        if self.scheduler is None:
            raise MachineError(f"process {self.pid!r} has no scheduler")
        return self.scheduler

    def _peer(self, pid: Pid) -> Process:
        other = self._scheduler().processes.get(pid)
        if other is None:
            raise MachineError(f"process {pid!r} does not exist")
        return other

    def _local_index(self, index: int) -> int:
        if not 0 <= index < len(self.frames[-1].locals):
            raise MachineError(f"local slot {index} out of range")
        return index

    def step(self) -> Weight:
        """Execute one instruction and return its scheduling cost."""
        instruction = self.fetch()
        print(f"{self.pid!r} : step {instruction}")
        op, arg = instruction.op, instruction.arg

        match op:
            case Op.DBG_STACK:
                print("[" + ", ".join(_debug_value(v) for v in self.stack) + "]")
                return Weight.ONE
            case Op.DBG_DROP:
                if not self.stack:
                    return self._fail_expected_value()
                print(self.heap.format_value(self.stack.pop()))
                return Weight.ONE
            case Op.PUSH_INT | Op.PUSH_PID:
                self.stack.append(arg)
                return Weight.NONE
            case Op.MAKE_TUPLE:
                split = len(self.stack) - arg
                if split < 0:
                    raise MachineError("not enough values for tuple")
                values = self.stack[split:]
                del self.stack[split:]
                self.stack.append(self.heap.allocate_tuple(values))
                return Weight.ONE
            case Op.GET_TUPLE:
                handle = self.stack.pop() if self.stack else None
                if not isinstance(handle, HeapHandle):
                    raise MachineError("expected value")
                item = self.heap.get(handle)
                if isinstance(item, str):
                    raise MachineError("expected tuple")
                if arg >= len(item):
                    raise MachineError("arity error")
                self.stack.append(item[arg])
                return Weight.ONE
            case Op.ADD | Op.SUB | Op.MUL | Op.DIV:
                rhs = self._pop_int("rhs")
                lhs = self._pop_int("lhs")
                self.stack.append(_arith(op, lhs, rhs))
                return Weight.NONE
            case Op.THIS:
                self.stack.append(self.pid)
                return Weight.NONE
            case Op.LINK:
                pid = self._pop_pid()
                other = self._peer(pid)
                if self.pid not in other.links:
                    other.links.append(self.pid)
                if pid not in self.links:
                    self.links.append(pid)
                return Weight.TWO
            case Op.MONITOR:
                other = self._peer(self._pop_pid())
                if self.pid not in other.monitors:
                    other.monitors.append(self.pid)
                return Weight.TWO
            case Op.SEND:
                if not self.stack:
                    return self._fail_expected_value()
                message = self.stack.pop()
                other = self._peer(self._pop_pid())
                other.mailbox.send(self.heap.deep_clone_to(message, other.heap))
                if other.state is ProcessState.WAITING:
                    other.state = ProcessState.RUNNABLE
                    self._scheduler().task_queue.append(other.pid)
                return Weight.THREE
            case Op.RECEIVE:
                message = self.mailbox.receive()
                if message is None:
                    self.rewind()
                    self.state = ProcessState.WAITING
                    return Weight.FOUR
                self.stack.append(message)
                return Weight.TWO
            case Op.STORE:
                if not self.stack:
                    return self._fail_expected_value()
                value = self.stack.pop()
                self.frames[-1].locals[self._local_index(arg)] = value
                return Weight.ONE
            case Op.LOAD:
                self.stack.append(self.frames[-1].locals[self._local_index(arg)])
                return Weight.ONE
            case Op.GOTO:
                self.ip = arg
                return Weight.NONE
            case Op.RETURN:
                if self.frames:
                    self.ip = self.frames.pop().ip
                    return Weight.ONE
                self.state = ProcessState.EXITING
                return Weight.THREE
            case Op.EXIT_REASON:
                self.exit_reason = self._pop("exit reason")
                self.state = ProcessState.EXITING
                return Weight.THREE
            case Op.EXIT:
                self.state = ProcessState.EXITING
                return Weight.THREE
        raise MachineError(f"unknown instruction {instruction}")


_TIME_SLICE = 8


@dataclass(eq=False)
class Scheduler:
    """Round-robin scheduler over a table of processes."""

    task_queue: deque = field(default_factory=deque)
    processes: dict = field(default_factory=dict)

    def add_process(self, process: Process) -> None:
        process.scheduler = self
        self.task_queue.append(process.pid)
        self.processes[process.pid] = process

    def spawn(
        self, frames: Iterable[Union[Frame, Sequence[Instruction]]], locals_=None
    ) -> Process:
        """Create and enqueue a process; plain code sequences get copies of locals_."""
        built = [
            f if isinstance(f, Frame) else Frame(list(f), list(locals_ or ()))
            for f in frames
        ]
        process = Process(pid=Pid.next(), frames=built)
        self.add_process(process)
        return process

    def run(self) -> None:
        """Run processes until none is left runnable."""
        while self.task_queue:
            pid = self.task_queue.popleft()
            process = self.processes.get(pid)
            if process is None:
                raise MachineError(f"dangling process : {pid!r}")

            spent = 0
            while spent < _TIME_SLICE and process.state.is_runnable():
                if process.state is ProcessState.RUNNABLE:
                    process.state = ProcessState.RUNNING
                spent += process.step()

            if process.state is ProcessState.RUNNING:
                self.task_queue.append(pid)
            elif process.state is ProcessState.EXITING:
                self._finish(pid)

    def _finish(self, pid: Pid) -> None:
        process = self.processes.pop(pid)
        reason = process.exit_reason

        if reason is not None:
            for linked_pid in process.links:
                link = self.processes.get(linked_pid)
                if link is None:
                    continue
                print(
                    f"process {link.pid!r} exiting due to linked {process.pid!r}",
                    file=sys.stderr,
                )
                link.exit_reason = process.heap.deep_clone_to(reason, link.heap)
                if link.state is not ProcessState.EXITING:
                    link.state = ProcessState.EXITING
                    self.task_queue.appendleft(linked_pid)

        for monitoring_pid in process.monitors:
            monitor = self.processes.get(monitoring_pid)
            if monitor is None:
                continue
            if reason is not None:
                notice = process.heap.allocate_tuple([ATOM_EXIT, pid, reason])
                message = process.heap.deep_clone_to(notice, monitor.heap)
            else:
                message = monitor.heap.allocate_tuple([ATOM_EXIT, pid, ATOM_NORMAL])
            monitor.mailbox.send(message)
            if monitor.state is ProcessState.WAITING:
                monitor.state = ProcessState.RUNNABLE
                self.task_queue.appendleft(monitor.pid)

        self.task_queue = deque(p for p in self.task_queue if p != pid)