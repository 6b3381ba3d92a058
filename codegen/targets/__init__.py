"""
Harness generators, one module per target language.
"""

from .cpp import CppGenerator
from .csharp import CSharpGenerator
from .go import GoGenerator
from .java import JavaGenerator
from .kotlin import KotlinGenerator
from .lua import LuaGenerator
from .php import PhpGenerator
from .python import PythonGenerator
from .r import RGenerator
from .ruby import RubyGenerator
from .rust import RustGenerator
from .swift import SwiftGenerator

__all__ = [
    "CSharpGenerator",
    "CppGenerator",
    "GoGenerator",
    "JavaGenerator",
    "KotlinGenerator",
    "LuaGenerator",
    "PhpGenerator",
    "PythonGenerator",
    "RGenerator",
    "RubyGenerator",
    "RustGenerator",
    "SwiftGenerator",
]
