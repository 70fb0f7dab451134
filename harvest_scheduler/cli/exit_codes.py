"""Exit codes of the harvest-scheduler command."""


class ExitCode:
    """Exit codes used by harvest-scheduler commands.

    - 0: Success
    - 1: General error
    - 2: Configuration error
    - 7: Invalid argument
    - 130: Interrupted (SIGINT)
    """

    SUCCESS = 0
    GENERAL_ERROR = 1
    CONFIGURATION_ERROR = 2
    INVALID_ARGUMENT = 7
    CANCELLED = 130
