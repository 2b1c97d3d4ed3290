class StepwiseError(Exception):
    """Base exception for stepwise"""
    pass


class ConfigurationError(StepwiseError):
    """Configuration-related errors"""
    pass


class FeatureParseError(StepwiseError):
    """Feature text could not be parsed"""

    def __init__(self, message: str, filename: str = None, line: int = None):
        super().__init__(message)
        self.filename = filename
        self.line = line


class StepModuleError(StepwiseError):
    """A step definition module could not be loaded"""
    pass


class MissingHandler(StepwiseError):
    """Step definition registered without a callable or method name"""

    def __init__(self, message: str = "Step definitions must always have a callable or method name"):
        super().__init__(message)


class MissingExamples(StepwiseError):
    """Scenario Outline without any Examples section"""
    pass


class Undefined(StepwiseError):
    """No step definition matches the step text"""

    def __init__(self, step_name: str, nested: bool = False):
        super().__init__(f"Undefined step: \"{step_name}\"")
        self.step_name = step_name
        self.nested = nested

    def mark_nested(self) -> "Undefined":
        self.nested = True
        return self


class Ambiguous(StepwiseError):
    """More than one step definition matches the step text"""

    def __init__(self, step_name: str, definitions):
        self.step_name = step_name
        self.definitions = list(definitions)
        lines = [f"Ambiguous match of \"{step_name}\":", ""]
        for definition in self.definitions:
            lines.append(f"  {definition.pattern_source} at {definition.location}")
        super().__init__("\n".join(lines))


class Pending(StepwiseError):
    """Raised by a handler that is not implemented yet"""

    def __init__(self, message: str = "TODO"):
        super().__init__(message)


class TableMismatch(StepwiseError):
    """Expected and actual tables differ; carries the diff table"""

    def __init__(self, table, message: str = "Tables were not identical"):
        super().__init__(message)
        self.table = table
