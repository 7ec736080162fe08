# procmach

procmach is a small virtual machine for lightweight processes, in the
style of actor runtimes. Every process has its own operand stack, call
frames, heap and mailbox. A cooperative `Scheduler` runs the processes in
turn. Each turn gives a process a budget of 8 weight units, and every
instruction costs a `Weight` from 0 to 4.

## What is in the package

`procmach.machine` holds the virtual machine:

- `Instruction(op, arg)` is a single instruction. Its opcode comes from `Op`:
  `PUSH_INT`, `PUSH_PID`, `MAKE_TUPLE`, `GET_TUPLE`, `ADD`, `SUB`, `MUL`,
  `DIV`, `THIS`, `LINK`, `MONITOR`, `SEND`, `RECEIVE`, `STORE`, `LOAD`,
  `GOTO`, `RETURN`, `EXIT_REASON`, `EXIT`, `DBG_STACK` and `DBG_DROP`.
  Arithmetic works on 32-bit integers. Overflow and division by zero raise
  `MachineError`, and division truncates toward zero.
- `Frame(code, locals)` is a block of code together with its local
  variable slots.
- `Heap` stores strings and tuples. Its values are `int`, `Pid`, `Atom`
  and `HeapHandle`. `Heap.deep_clone_to` copies a value, and everything
  it refers to, into another heap. `Heap.format_value` renders a value in
  the form that `DBG_DROP` prints.
- `Mailbox` is a FIFO queue of messages. A sent message is deep-copied into
  the receiver's heap. A `RECEIVE` on an empty mailbox puts the process
  into the `WAITING` state until a message arrives.
- `Process` runs the instructions of its top frame. `Process.step`
  executes one instruction, prints a trace line to standard output and
  returns the instruction's weight. A process that pops from an empty stack
  in `STORE`, `SEND` or `DBG_DROP` exits with reason `ATOM_EXPECTED_VALUE`.
  Other faults raise `MachineError`.
- `Scheduler` holds the process table and the run queue.
  `Scheduler.add_process` registers a process you have built yourself.
  `Scheduler.spawn(frames, locals_)` builds a process from frames or plain
  instruction lists and registers it. `Scheduler.run` keeps running until
  the queue is empty.
- Links: when a process exits with a reason, each linked process is given
  the same reason and exits next. A message about this goes to standard
  error.
- Monitors: when a monitored process exits, each watcher receives the
  tuple `(ATOM_EXIT, pid, reason)` in its mailbox. For a process that exits
  without a reason, the tuple holds `ATOM_NORMAL` instead.

`procmach.programs` holds three sample programs. Each one takes an
optional `Scheduler`:

- `program_adder` starts two processes. One sends two integers to the
  other, which adds them and prints its stack.
- `program_monitor` makes one process monitor another that exits
  normally, and prints the exit notice.
- `program_link` links three processes in a chain. Two of them loop on a
  zero-cost `GOTO`, so this program never finishes.

## Installation

```
pip install .
```

## Usage

The `procmach` command runs a sample program. With no argument it runs
the adder:

```
procmach
procmach monitor
procmach link
```

From Python:

```python
from procmach.machine import Instruction, Op, Scheduler

scheduler = Scheduler()
scheduler.spawn([[Instruction(Op.PUSH_INT, 2), Instruction(Op.PUSH_INT, 3),
                  Instruction(Op.ADD), Instruction(Op.DBG_STACK),
                  Instruction(Op.EXIT)]])
scheduler.run()
```

## Limitations

- There is no assembler and no text format for programs. You build
  programs in Python from `Instruction` and `Frame` objects.
- There is no instruction that calls another frame. `RETURN` only pops
  the current frame.
- Exits cannot be trapped. A linked process always exits along with its
  partner.
- Everything runs in a single thread, and the scheduler has no timers or
  I/O.

## Running the tests

```
pip install .[test]
pytest
```