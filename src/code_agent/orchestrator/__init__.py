"""Task orchestrator: durable JSON queue, planning, step execution and worker.

Flow of one task: the queue store hands the worker the oldest pending task,
the task manager plans it, executes every step against the code generator,
commits each step to a branch and opens a pull request, and the worker moves
the durable task to ``completed`` or ``failed`` depending on the outcome.
Plans and per-run status live only in memory; the queue file is the single
durable record.
"""
