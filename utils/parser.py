from typing import Any, Dict, List, Tuple

from pydantic import BaseModel, Field, ValidationError

from core.logger import logger
from schemas.quiz import QuestionDraft

MAX_OPTIONS = 10
MAX_QUESTION_LENGTH = 300
MAX_OPTION_LENGTH = 100


class ParserError(Exception):
    """Custom exception for question bank errors."""
    pass


class QuestionBankEntry(BaseModel):
    """One question in an imported question bank."""
    id: str
    question: str
    options: List[str]
    correctAnswer: str
    category: str
    difficulty: str


class QuestionBankImport(BaseModel):
    questions: List[QuestionBankEntry] = Field(..., description="Questions to import")


class QuestionFile(BaseModel):
    """Seed file layout: {"questions": [{questionText, options, correctAnswer, category, difficulty}]}"""
    questions: List[QuestionDraft]


def describe_validation_error(errors: List[Dict[str, Any]]) -> str:
    """Human readable one-line summary of pydantic validation errors."""
    parts = []
    for item in errors:
        location = ".".join(str(p) for p in item["loc"])
        parts.append(f"{item['msg']} at \"{location}\"" if location else item["msg"])
    return "Validation error: " + "; ".join(parts)


def parse_question_bank(payload: Any) -> List[QuestionDraft]:
    """Validate an imported question bank and convert it into drafts."""
    try:
        bank = QuestionBankImport.model_validate(payload)
    except ValidationError as e:
        raise ParserError(describe_validation_error(e.errors()))

    drafts = []
    for i, entry in enumerate(bank.questions, 1):
        q = {
            'question': entry.question.strip(),
            'options': [opt.strip() for opt in entry.options],
            'correct_answer': entry.correctAnswer.strip(),
        }
        validate_question(q, i)
        drafts.append(QuestionDraft(
            question_text=q['question'],
            options=q['options'],
            correct_answer=q['correct_answer'],
            category=entry.category,
            difficulty=entry.difficulty,
        ))
    return drafts


def parse_question_file(payload: Any) -> List[QuestionDraft]:
    """Validate the contents of a seed question file."""
    try:
        return QuestionFile.model_validate(payload).questions
    except ValidationError as e:
        raise ParserError(describe_validation_error(e.errors()))


def parse_lines_to_questions(lines: List[str], category: str, difficulty: str) -> Tuple[List[QuestionDraft], List[str]]:
    """
    Parse questions written as plain text:

        ?Question text
        +Correct option
        =Wrong option

    Lines without a marker continue the previous question or option.
    Returns the parsed drafts and one message per rejected question.
    """
    questions = []
    errors = []
    current_question = None
    current_question_start_line = 0

    def finish(q: Dict, start_line: int):
        try:
            validate_question(q, start_line)
            questions.append(QuestionDraft(
                question_text=q['question'],
                options=q['options'],
                correct_answer=q['correct_answer'],
                category=category,
                difficulty=difficulty,
            ))
        except ParserError as e:
            errors.append(str(e))

    for i, text in enumerate(lines, 1):
        text = text.strip()
        if not text:
            continue

        if text.startswith('?'):
            if current_question:
                finish(current_question, current_question_start_line)

            current_question = {
                'question': text[1:].strip(),
                'options': [],
                'correct_answer': None,
                'last_item_type': 'q'  # 'q' question, 'c' correct option, 'w' wrong option
            }
            current_question_start_line = i

        elif text.startswith('+'):
            if not current_question:
                continue
            if current_question['correct_answer'] is not None:
                current_question['__error'] = (
                    f"Line {i}: more than one correct option for the question starting at line {current_question_start_line}"
                )
            current_question['correct_answer'] = text[1:].strip()
            current_question['options'].append(text[1:].strip())
            current_question['last_item_type'] = 'c'

        elif text.startswith('='):
            if not current_question:
                continue
            current_question['options'].append(text[1:].strip())
            current_question['last_item_type'] = 'w'

        elif current_question:
            # Multiline support: append to last item
            last_type = current_question['last_item_type']
            if last_type == 'q':
                current_question['question'] += " " + text
            elif current_question['options']:
                current_question['options'][-1] += " " + text
                if last_type == 'c':
                    current_question['correct_answer'] = current_question['options'][-1]
        else:
            errors.append(f"Line {i}: text outside of a question: {text[:20]}...")

    if current_question:
        finish(current_question, current_question_start_line)

    if not questions and not errors:
        raise ParserError("No questions found")

    if errors:
        logger.info("Question text parsed with errors", parsed=len(questions), errors=len(errors))
    return questions, errors


def validate_question(q: Dict, line_num: int):
    """Ensures a question has text, options and a correct answer among them."""
    if '__error' in q:
        raise ParserError(q['__error'])

    if not q['question']:
        raise ParserError(f"Question {line_num}: question text is empty")

    if len(q['options']) < 2:
        raise ParserError(
            f"Question {line_num} ({q['question'][:20]}...): needs at least 2 options, got {len(q['options'])}"
        )

    if len(q['options']) > MAX_OPTIONS:
        raise ParserError(f"Question {line_num}: too many options ({len(q['options'])}, max {MAX_OPTIONS})")

    if len(set(q['options'])) != len(q['options']):
        raise ParserError(f"Question {line_num} ({q['question'][:20]}...): duplicate options")

    if not q['correct_answer'] or q['correct_answer'] not in q['options']:
        raise ParserError(f"Question {line_num} ({q['question'][:20]}...): correct answer is not one of the options")

    if len(q['question']) > MAX_QUESTION_LENGTH:
        raise ParserError(f"Question {line_num}: question is too long ({len(q['question'])} characters)")

    for opt in q['options']:
        if len(opt) > MAX_OPTION_LENGTH:
            raise ParserError(f"Question {line_num}: option too long ({opt[:20]}..., {len(opt)} characters)")
