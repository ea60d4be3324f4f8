import unittest

import lintcheck


SAMPLE = '''package com.example

import scala.collection.mutable.{Map, Set}

/** Doc comment. */
class Sample(val name: String) extends Base {
  /* block /* nested */ comment */
  def render(count: Int): String = s"${name}: $count items" + f"$ratio%.2f"
  val raw = """line one
line two"""
  val ch = 'x'
  val sym = 'token
  val hex = 0xFF + 1.5e3f - 42L
  def `quoted name` = x_+ ::: y
}
'''


def kinds_and_texts(text):
    return [(tok.kind, tok.text) for tok in lintcheck.tokenize(text) if not tok.is_trivia]


class TokenizerTests(unittest.TestCase):
    def test_round_trip_reconstructs_source(self) -> None:
        tokens = list(lintcheck.tokenize(SAMPLE))
        self.assertEqual("".join(tok.text for tok in tokens), SAMPLE)

    def test_tokens_cover_text_without_gaps(self) -> None:
        offset = 0
        for tok in lintcheck.tokenize(SAMPLE):
            self.assertEqual(tok.span.start_offset, offset)
            offset = tok.span.end_offset
        self.assertEqual(offset, len(SAMPLE))

    def test_stream_is_restartable(self) -> None:
        stream = lintcheck.tokenize(SAMPLE)
        first = next(iter(stream))
        self.assertEqual(first.text, "package")
        self.assertEqual(list(stream), list(stream))

    def test_basic_kinds(self) -> None:
        self.assertEqual(
            kinds_and_texts("val x = 42 // answer"),
            [
                (lintcheck.KEYWORD, "val"),
                (lintcheck.IDENTIFIER, "x"),
                (lintcheck.OPERATOR, "="),
                (lintcheck.LITERAL, "42"),
            ],
        )
        comments = [tok for tok in lintcheck.tokenize("val x = 42 // answer") if tok.kind == lintcheck.COMMENT]
        self.assertEqual([tok.text for tok in comments], ["// answer"])

    def test_nested_block_comment_is_one_token(self) -> None:
        tokens = list(lintcheck.tokenize("/* a /* b */ c */ x"))
        self.assertEqual(tokens[0].kind, lintcheck.COMMENT)
        self.assertEqual(tokens[0].text, "/* a /* b */ c */")

    def test_doc_comment_flag(self) -> None:
        tokens = list(lintcheck.tokenize("/** doc */ /* plain */"))
        self.assertTrue(tokens[0].is_doc_comment)
        self.assertFalse(tokens[2].is_doc_comment)

    def test_interpolated_string_with_splice_is_one_literal(self) -> None:
        text = 's"a ${b + "c"} d"'
        self.assertEqual(kinds_and_texts(text), [(lintcheck.LITERAL, text)])

    def test_triple_quoted_string_spans_lines(self) -> None:
        tokens = [tok for tok in lintcheck.tokenize(SAMPLE) if tok.text.startswith('"""')]
        self.assertEqual(len(tokens), 1)
        self.assertEqual(tokens[0].span.start_line, 9)
        self.assertEqual(tokens[0].span.end_line, 10)

    def test_char_symbol_and_number_literals(self) -> None:
        self.assertEqual(
            kinds_and_texts("'x' 'token 0xFF 1.5e3f 42L"),
            [
                (lintcheck.LITERAL, "'x'"),
                (lintcheck.LITERAL, "'token"),
                (lintcheck.LITERAL, "0xFF"),
                (lintcheck.LITERAL, "1.5e3f"),
                (lintcheck.LITERAL, "42L"),
            ],
        )

    def test_identifiers_and_operators(self) -> None:
        self.assertEqual(
            kinds_and_texts("`quoted name` x_+ ::: y"),
            [
                (lintcheck.IDENTIFIER, "`quoted name`"),
                (lintcheck.IDENTIFIER, "x_+"),
                (lintcheck.OPERATOR, ":::"),
                (lintcheck.IDENTIFIER, "y"),
            ],
        )

    def test_spans_are_one_based_with_exclusive_end(self) -> None:
        tokens = [tok for tok in lintcheck.tokenize("val x = 1\nval yy = 2\n") if tok.text == "yy"]
        span = tokens[0].span
        self.assertEqual((span.start_line, span.start_col, span.end_line, span.end_col), (2, 5, 2, 7))

    def test_crlf_line_comment_excludes_carriage_return(self) -> None:
        text = "// note\r\nval x = 1\r\n"
        tokens = list(lintcheck.tokenize(text))
        self.assertEqual(tokens[0].text, "// note")
        self.assertEqual("".join(tok.text for tok in tokens), text)


class LexErrorTests(unittest.TestCase):
    def test_unterminated_string_stops_at_end_of_line(self) -> None:
        source = lintcheck.SourceText('val s = "abc\nval t = 1\n')
        tokens, errors = lintcheck.TokenStream(source).scan()
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].message, "unterminated string literal")
        self.assertEqual(errors[0].span.start_line, 1)
        literal = [tok for tok in tokens if tok.kind == lintcheck.LITERAL][0]
        self.assertEqual(literal.text, '"abc')
        # lexing resumed on the next line
        self.assertIn((lintcheck.KEYWORD, "val"), [(tok.kind, tok.text) for tok in tokens if tok.span.start_line == 2])

    def test_unterminated_block_comment_runs_to_end(self) -> None:
        source = lintcheck.SourceText("val x = 1 /* open\nstill open")
        tokens, errors = lintcheck.TokenStream(source).scan()
        self.assertEqual([error.message for error in errors], ["unterminated block comment"])
        self.assertEqual(tokens[-1].kind, lintcheck.COMMENT)
        self.assertEqual(tokens[-1].span.end_offset, len(source))

    def test_unknown_character_is_invalid_token(self) -> None:
        source = lintcheck.SourceText("val x = 1 ¢")
        tokens, errors = lintcheck.TokenStream(source).scan()
        self.assertEqual(tokens[-1].kind, lintcheck.INVALID)
        self.assertEqual(len(errors), 1)

    def test_plain_iteration_does_not_need_error_list(self) -> None:
        tokens = list(lintcheck.tokenize('"open'))
        self.assertEqual(len(tokens), 1)
        self.assertEqual(tokens[0].kind, lintcheck.LITERAL)


if __name__ == "__main__":
    unittest.main()
