"""
Prompt templates for the text-inference capabilities.

Every text backend receives the same prompts; the JSON shapes they ask for are
the shapes ``parsing`` knows how to read back.
"""

from typing import Dict

TUTOR_SYSTEM = (
    "You are an expert programming tutor specializing in code education. "
    "Provide clear, comprehensive explanations with practical code examples. "
    "Always include runnable code snippets when relevant."
)

ANALYSIS_SYSTEM = "You analyze code. Return a short list of issues and suggestions."

QUIZ_SYSTEM = (
    "Generate multiple-choice questions. Provide the options and indicate the "
    "index of the correct answer."
)

_LANGUAGE_CONTEXT: Dict[str, str] = {
    "python": """
- Python syntax, PEP 8 style guide
- Built-in data structures (lists, dicts, sets, tuples)
- Object-oriented programming concepts
- Exception handling and debugging
- Popular libraries (numpy, pandas, requests, etc.)
- Pythonic ways and idioms""",
    "javascript": """
- ES6+ features and modern JavaScript
- DOM manipulation and event handling
- Asynchronous programming (Promises, async/await)
- Node.js and npm ecosystem
- Popular frameworks (React, Vue, Angular)
- Browser APIs and Web APIs""",
    "java": """
- Object-oriented programming principles
- Collections framework and generics
- Exception handling and logging
- Spring framework and annotations
- JVM concepts and memory management
- Design patterns and best practices""",
    "cpp": """
- Memory management and pointers
- STL containers and algorithms
- Object-oriented and generic programming
- RAII and smart pointers
- Template metaprogramming
- Performance optimization techniques""",
}

_DEFAULT_CONTEXT = """
- General programming concepts
- Data structures and algorithms
- Software design principles
- Testing and debugging techniques
- Code optimization and best practices"""


def language_context(language: str) -> str:
    return _LANGUAGE_CONTEXT.get(language.lower(), _DEFAULT_CONTEXT)


def enrich_question(question: str, language: str) -> str:
    """Wrap a student question in the tutoring context block for ``language``."""
    return f"""
You are an expert coding tutor with access to comprehensive programming datasets. Here's the context:

PROGRAMMING DATASETS AVAILABLE:
- Algorithm implementations and explanations
- Data structure examples and use cases
- Common programming patterns and best practices
- Debugging techniques and solutions
- Performance optimization strategies
- Code quality and style guidelines

LANGUAGE-SPECIFIC KNOWLEDGE BASE:
{language_context(language)}

Please provide a comprehensive, educational response that includes:
1. Clear explanation with examples
2. Code snippets with proper syntax
3. Best practices and common pitfalls
4. Related concepts and further learning suggestions

QUESTION: {question}
"""


def answer_prompt(question: str, language: str) -> str:
    return f"""Answer this coding question in {language}:

Question: {question}

Provide a comprehensive response with:
1. A clear explanation of the concept
2. A practical code example
3. Real-world use cases
4. Related topics to explore

Format your response as JSON with these exact fields:
{{
  "explanation": "Clear explanation of the concept",
  "codeExample": "Practical code example",
  "visualization": "Description of how to visualize this concept",
  "quiz": [{{"question": "...", "options": ["...", "..."], "correctAnswer": 0, "explanation": "...", "difficulty": "easy"}}],
  "relatedTopics": ["topic1", "topic2"]
}}"""


def analysis_prompt(code: str, language: str) -> str:
    return f"""Analyze this {language} code for errors and provide suggestions:

```{language}
{code}
```

Provide analysis in JSON format:
{{
  "errors": ["list of errors found"],
  "suggestions": ["list of improvement suggestions"],
  "explanation": "explanation of what the code does",
  "fixedCode": "corrected version if errors found"
}}"""


def quiz_prompt(topic: str, difficulty: str, count: int) -> str:
    return f"""Generate {count} {difficulty} quiz questions about {topic} in programming.

Format as JSON array:
[
  {{
    "question": "What is...?",
    "options": ["option1", "option2", "option3", "option4"],
    "correctAnswer": 0,
    "explanation": "Explanation of correct answer",
    "difficulty": "{difficulty}"
  }}
]"""


def algorithm_prompt(algorithm: str, language: str) -> str:
    return f"""Explain the {algorithm} algorithm in {language}. Include:

1. Step-by-step explanation
2. Code implementation
3. Time/space complexity
4. Visualization description
5. Practice problems

Format as JSON:
{{
  "explanation": "Detailed explanation",
  "codeExample": "Algorithm implementation",
  "visualization": "How to visualize this algorithm",
  "quiz": [quiz questions],
  "relatedTopics": ["related algorithms"]
}}"""
