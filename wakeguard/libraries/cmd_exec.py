import logging
import asyncio
import math

__all__ = ['CmdExec', 'CmdExecError', 'CmdExecProcessError']

class CmdExecError(Exception):
    pass

class CmdExecProcessError(Exception):
    def __init__(self, message: str, code: int | None = 0):
        super().__init__(message)
        self.code = code

class CmdExec:
    @classmethod
    async def exec(cls, cmd: list, *, timeout: float | None = None, env=None) -> str:
        if not cmd:
            raise CmdExecError("Command not specified")

        logging.debug(f'Executing command: {[*cmd]}')

        if not env:
            env = None

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise CmdExecError(f'Could not execute "{cmd[0]}": {e}') from e

        try:
            out, err = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            # never leave the child behind on timeout or shutdown
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        if process.returncode != 0:
            raise CmdExecProcessError((err or out).decode('utf-8', errors='replace').strip(), process.returncode)

        result = ''

        if out:
            result = out.decode('utf-8', errors='replace').strip()

        return result

    @classmethod
    async def ping(cls, host: str, count: int = 1, timeout: float = 5) -> str:
        # ping -W rounds up to whole seconds on older iputils, the exec timeout keeps the bound
        wait = max(1, math.ceil(timeout))

        return await cls.exec(['ping', '-n', '-c', str(count), '-W', str(wait), host], timeout=timeout * count)
