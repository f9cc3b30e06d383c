"""
Everything on the boundary between a Task and its worker process.

The submodules are:
 - msg -- the request & reply messages
 - serde -- serialization of messages, payloads, functions and persisted tasks
 - config -- logging config for workers and process-wide settings
 - bootstrap -- the program every worker process runs
 - handle -- the WorkerHandle, owning one worker process
"""
