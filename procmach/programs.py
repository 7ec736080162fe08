"""Sample programs that exercise messaging, monitoring and linking."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

from procmach.machine import Frame, Instruction, Op, Pid, Process, Scheduler


def _ins(op: Op, arg=None) -> Instruction:
    return Instruction(op, arg)


def _process(*frames: Frame) -> Process:
    return Process(pid=Pid.next(), frames=list(frames))


def _run(scheduler: Optional[Scheduler], *processes: Process) -> None:
    scheduler = scheduler if scheduler is not None else Scheduler()
    for process in processes:
        scheduler.add_process(process)
    scheduler.run()


def program_monitor(scheduler: Optional[Scheduler] = None) -> tuple:
    """Monitor a process that exits normally and print the exit notice.

    Returns the exiting process and the monitoring process.
    """
    process_exit = _process(
        Frame([_ins(Op.PUSH_INT, 3), _ins(Op.SUB), _ins(Op.EXIT)]),
        Frame([_ins(Op.PUSH_INT, 0), _ins(Op.RETURN)]),
    )
    process_main = _process(
        Frame(
            [
                _ins(Op.PUSH_PID, process_exit.pid),
                _ins(Op.MONITOR),
                _ins(Op.RECEIVE),
                _ins(Op.DBG_DROP),
                _ins(Op.GOTO, 3),
                _ins(Op.EXIT),
            ]
        )
    )
    _run(scheduler, process_main, process_exit)
    return process_exit, process_main


def program_adder(scheduler: Optional[Scheduler] = None) -> tuple:
    """Receive two integers from another process and print their sum.

    Returns the adding process and the sending process.
    """
    process_main = _process(
        Frame(
            [
                _ins(Op.RECEIVE),
                _ins(Op.STORE, 0),
                _ins(Op.RECEIVE),
                _ins(Op.STORE, 1),
                _ins(Op.LOAD, 0),
                _ins(Op.LOAD, 1),
                _ins(Op.ADD),
                _ins(Op.DBG_STACK),
                _ins(Op.EXIT),
            ],
            [69, 69],
        )
    )
    process_sender = _process(
        Frame(
            [
                _ins(Op.PUSH_PID, process_main.pid),
                _ins(Op.PUSH_INT, 3),
                _ins(Op.SEND),
                _ins(Op.PUSH_PID, process_main.pid),
                _ins(Op.PUSH_INT, 3),
                _ins(Op.SEND),
                _ins(Op.EXIT),
            ]
        )
    )
    _run(scheduler, process_main, process_sender)
    return process_main, process_sender


def program_link(scheduler: Optional[Scheduler] = None) -> tuple:
    """Chain three processes with links; the first link target spins forever.

    Returns the three processes in creation order if the run ever ends.
    """
    process_exit1 = _process(Frame([_ins(Op.PUSH_INT, 99), _ins(Op.EXIT_REASON)]))
    process_exit2 = _process(
        Frame(
            [
                _ins(Op.PUSH_PID, process_exit1.pid),
                _ins(Op.LINK),
                _ins(Op.GOTO, 2),
                _ins(Op.EXIT),
            ]
        )
    )
    process_main = _process(
        Frame(
            [
                _ins(Op.PUSH_PID, process_exit2.pid),
                _ins(Op.LINK),
                _ins(Op.GOTO, 2),
                _ins(Op.EXIT),
            ]
        )
    )
    _run(scheduler, process_main, process_exit2, process_exit1)
    return process_exit1, process_exit2, process_main


_PROGRAMS = {
    "adder": program_adder,
    "monitor": program_monitor,
    "link": program_link,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run one of the sample programs, the adder by default."""
    parser = argparse.ArgumentParser(prog="procmach")
    parser.add_argument(
        "program", nargs="?", default="adder", choices=sorted(_PROGRAMS)
    )
    args = parser.parse_args(argv)
    _PROGRAMS[args.program](Scheduler())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())