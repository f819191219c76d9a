import discord
from discord import app_commands
from discord.ext import commands
import logging
from typing import Dict, Optional
import os
from pathlib import Path

from .config_manager import ConfigManager
from .data_manager import DataManager
from .models import FinishReason, Question, QuizResult, RewardTier, SessionSnapshot
from .profile_store import KeyValueStore, ProfileManager, ProfileUpdate
from .question_generator import QuestionGenerationError, QuestionGenerator
from .question_source import OpenTriviaClient, QuestionSourceError
from .quiz_controller import QuizController

logger = logging.getLogger(__name__)

ANSWER_LABELS = ["A", "B", "C", "D", "E", "F"]

DIFFICULTY_CHOICES = [
    app_commands.Choice(name="Easy", value="easy"),
    app_commands.Choice(name="Medium", value="medium"),
    app_commands.Choice(name="Hard", value="hard"),
]

REWARD_TITLES = {
    RewardTier.MASTER: "🏆 Quiz Master!",
    RewardTier.GOOD: "👍 Good job!",
    RewardTier.BEGINNER: "📚 Keep practicing!",
}


LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def setup_logging(config: Optional[dict] = None) -> logging.Logger:
    """
    Log to the console and ``<log_directory>/bot.log``, with errors also
    copied to ``errors.log``. Level and directory come from the ``logging``
    section of the config.
    """
    settings = (config or {}).get('logging') or {}
    level = getattr(logging, str(settings.get('level', 'INFO')).upper(), logging.INFO)
    log_dir = Path(settings.get('log_directory', './logs/'))
    log_dir.mkdir(parents=True, exist_ok=True)

    errors_only = logging.FileHandler(log_dir / "errors.log", encoding='utf-8')
    errors_only.setLevel(logging.ERROR)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(log_dir / "bot.log", encoding='utf-8'),
            errors_only,
        ]
    )

    # Library loggers stay at WARNING whatever the bot level is
    for noisy in ('discord', 'discord.http', 'httpx'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logging.getLogger(__name__)


class AnswerButton(discord.ui.Button):
    """One answer option of the current question."""

    def __init__(self, bot: "QuizBot", answer_index: int, text: str):
        label = ANSWER_LABELS[answer_index] if answer_index < len(ANSWER_LABELS) else str(answer_index + 1)
        super().__init__(
            style=discord.ButtonStyle.primary,
            label=f"{label}. {text}"[:80],
        )
        self.quiz_bot = bot
        self.answer_index = answer_index

    async def callback(self, interaction: discord.Interaction):
        await self.quiz_bot.handle_answer(interaction, self.answer_index, from_button=True)


class AnswerView(discord.ui.View):
    """Answer buttons for a single question."""

    def __init__(self, bot: "QuizBot", question: Question, timeout: Optional[float] = None):
        super().__init__(timeout=timeout)
        for index, answer in enumerate(question.answers):
            self.add_item(AnswerButton(bot, index, answer.text))


class QuizMessage:
    """The Discord message showing a channel's current question."""

    def __init__(self, message: discord.Message, question: Question, label: str):
        self.message = message
        self.question = question
        self.label = label
        self.feedback: Optional[str] = None


def build_question_embed(
    label: str,
    snapshot: SessionSnapshot,
    question: Question,
    feedback: Optional[str] = None
) -> discord.Embed:
    """Render a question, the session clock and optional answer feedback."""
    remaining = snapshot.remaining_seconds
    color = 0x00ff00 if remaining > 10 else 0xff6600 if remaining > 3 else 0xff0000
    embed = discord.Embed(
        title=f"🎯 Question {snapshot.question_number}/{snapshot.total_questions}",
        description=question.text,
        color=color
    )

    options = "\n".join(
        f"**{ANSWER_LABELS[i] if i < len(ANSWER_LABELS) else i + 1}.** {answer.text}"
        for i, answer in enumerate(question.answers)
    )
    embed.add_field(name="Answers", value=options, inline=False)

    timer_emoji = "⏱️" if remaining > 10 else "⚠️" if remaining > 3 else "🚨"
    embed.add_field(
        name=f"{timer_emoji} Time Remaining",
        value=f"{remaining} second{'s' if remaining != 1 else ''}",
        inline=True
    )
    embed.add_field(name="⭐ Score", value=str(snapshot.score), inline=True)
    embed.add_field(name="📚 Quiz", value=label, inline=True)

    if feedback:
        embed.add_field(name="Result", value=feedback, inline=False)
        embed.set_footer(text="Next question coming up")
    else:
        embed.set_footer(text="Pick an answer with the buttons or /answer")
    return embed


def build_feedback(question: Question, correct: bool) -> str:
    if correct:
        text = "✅ Correct!"
    else:
        text = f"❌ Wrong! The correct answer was **{question.correct_answer.text}**"
    if question.explanation:
        text += f"\n💡 {question.explanation}"
    return text


def build_result_embed(
    label: str,
    result: QuizResult,
    profile_update: Optional[ProfileUpdate] = None
) -> discord.Embed:
    """Render the final score, reward tier and profile changes."""
    if result.finish_reason is FinishReason.TIMED_OUT:
        title = "⏰ Time's Up!"
    elif result.finish_reason is FinishReason.CANCELLED:
        title = "🛑 Quiz Stopped"
    else:
        title = "🎉 Quiz Complete!"

    embed = discord.Embed(
        title=title,
        description=f"**{label}**",
        color=0xffd700 if result.reward_tier is RewardTier.MASTER else 0x00ff00
    )
    embed.add_field(
        name="📊 Final Score",
        value=f"{result.score}/{result.total_questions}",
        inline=True
    )
    embed.add_field(
        name="🏅 Rank",
        value=REWARD_TITLES[result.reward_tier],
        inline=True
    )

    if profile_update is not None:
        if profile_update.new_high_score:
            embed.add_field(
                name="🎉 New High Score!",
                value=f"Your best is now {profile_update.highest_score}",
                inline=False
            )
        else:
            embed.add_field(
                name="Best Score",
                value=str(profile_update.highest_score),
                inline=False
            )
        for achievement in profile_update.unlocked:
            embed.add_field(
                name=f"🏆 Achievement unlocked: {achievement.title}",
                value=achievement.description,
                inline=False
            )

    embed.set_footer(text="Thanks for playing! Use /trivia to begin a new quiz.")
    return embed


class QuizBot(commands.Bot):
    """Discord bot for timed trivia quizzes"""

    def __init__(self, config=None):
        self.app_config = config or {}

        # Slash commands only need guild events
        intents = discord.Intents.none()
        intents.guilds = True
        super().__init__(
            command_prefix=(self.app_config.get('bot') or {}).get('command_prefix', '!'),
            intents=intents,
            help_command=None
        )

        self.data_manager: Optional[DataManager] = None
        self.config_manager: Optional[ConfigManager] = None
        self.profile_manager: Optional[ProfileManager] = None
        self.quiz_controller: Optional[QuizController] = None
        self.trivia_client: Optional[OpenTriviaClient] = None
        self.question_generator: Optional[QuestionGenerator] = None

        # Channel ID -> message showing the current question
        self._quiz_messages: Dict[str, QuizMessage] = {}

    async def setup_hook(self):
        """Build managers, load questions and register commands before connecting."""
        logger.info("Preparing trivia components")
        try:
            self.setup_components()
            self.load_quiz_data()
            await self.setup_commands()
        except Exception:
            logger.exception("Trivia bot setup failed")
            raise
        logger.info("Trivia components ready")

    def setup_components(self):
        """Create managers from the loaded configuration."""
        self.config_manager = ConfigManager()
        errors = self.config_manager.apply_config(self.app_config)
        for error in errors:
            logger.warning(f"Ignored configuration value: {error}")
        health = self.config_manager.get_configuration_health_check()
        for problem in health['errors'] + health['warnings']:
            logger.warning(f"Configuration check: {problem}")

        self.data_manager = DataManager(
            self.config_manager.get_quiz_directory(),
            self.config_manager.get_user_quiz_file()
        )
        self.profile_manager = ProfileManager(KeyValueStore(self.config_manager.get_data_file()))
        self.quiz_controller = QuizController(self.data_manager, self.config_manager, self.profile_manager)
        self.trivia_client = OpenTriviaClient()
        self.question_generator = QuestionGenerator(
            model=self.config_manager.get_ollama_model(),
            host=self.config_manager.get_ollama_host()
        )

    def load_quiz_data(self):
        self.data_manager.load_quiz_files()
        self.data_manager.load_user_quizzes()
        summary = self.data_manager.get_loading_summary()
        for problem in summary['errors']:
            logger.warning(f"Quiz data problem: {problem}")
        logger.info(
            f"{summary['total_quizzes']} catalogs with {summary['total_questions']} questions and "
            f"{len(summary['user_categories'])} user categories available"
        )

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="categories", description="List the categories you can play")
        async def categories_command(interaction: discord.Interaction):
            await self.handle_categories(interaction)

        @self.tree.command(name="trivia", description="Start a timed trivia quiz")
        @app_commands.describe(
            category="Question category",
            difficulty="Question difficulty",
            online="Fetch fresh questions from the Open Trivia Database"
        )
        @app_commands.choices(difficulty=DIFFICULTY_CHOICES)
        async def trivia_command(
            interaction: discord.Interaction,
            category: str,
            difficulty: app_commands.Choice[str],
            online: bool = False
        ):
            await self.handle_trivia(interaction, category, difficulty.value, online)

        @self.tree.command(name="my_quiz", description="Play a quiz made from user-created questions")
        async def my_quiz_command(interaction: discord.Interaction, category: str):
            await self.handle_my_quiz(interaction, category)

        @self.tree.command(name="answer", description="Answer the current question by number")
        async def answer_command(interaction: discord.Interaction, number: int):
            await self.handle_answer(interaction, number - 1)

        @self.tree.command(name="stop", description="Stop the current quiz session")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="status", description="Show current quiz status and progress")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="leaderboard", description="Show the best players")
        async def leaderboard_command(interaction: discord.Interaction):
            await self.handle_leaderboard(interaction)

        @self.tree.command(name="achievements", description="Show your achievement progress")
        async def achievements_command(interaction: discord.Interaction):
            await self.handle_achievements(interaction)

        @self.tree.command(name="login", description="Set the name shown on the leaderboard")
        async def login_command(interaction: discord.Interaction, name: str):
            await self.handle_login(interaction, name)

        @self.tree.command(name="create_question", description="Add your own question to a quiz")
        @app_commands.describe(correct="Number of the correct answer (1-4)")
        async def create_question_command(
            interaction: discord.Interaction,
            category: str,
            question: str,
            answer1: str,
            answer2: str,
            answer3: str,
            answer4: str,
            correct: int,
            explanation: Optional[str] = None
        ):
            await self.handle_create_question(
                interaction, category, question,
                [answer1, answer2, answer3, answer4], correct - 1, explanation
            )

        @self.tree.command(name="generate_question", description="Generate a question with AI and add it to a quiz")
        @app_commands.choices(difficulty=DIFFICULTY_CHOICES)
        async def generate_question_command(
            interaction: discord.Interaction,
            category: str,
            difficulty: app_commands.Choice[str]
        ):
            await self.handle_generate_question(interaction, category, difficulty.value)

        @self.tree.command(name="set_questions", description="Set the number of questions for the next quiz")
        async def set_questions_command(interaction: discord.Interaction, number: int):
            await self.handle_set_questions(interaction, number)

        @self.tree.command(name="set_duration", description="Set the quiz timer in seconds (10-600)")
        async def set_duration_command(interaction: discord.Interaction, seconds: int):
            await self.handle_set_duration(interaction, seconds)

        @self.tree.command(name="random_order", description="Toggle between random and sequential question order")
        async def random_order_command(interaction: discord.Interaction):
            await self.handle_random_order(interaction)

        @self.tree.error
        async def on_app_command_error(interaction: discord.Interaction, error: app_commands.AppCommandError):
            await self.handle_app_command_error(interaction, error)

        logger.info("Slash commands registered")

    async def on_ready(self):
        logger.info(f"Connected as {self.user} to {len(self.guilds)} guild(s)")
        print(f"🤖 {self.user} is online")

        try:
            synced = await self.tree.sync()
        except discord.HTTPException as e:
            logger.error(f"Slash command sync failed: {e}")
            return
        logger.info(f"{len(synced)} slash commands synced")

    async def on_error(self, event, *args, **kwargs):
        logger.error(f"Unhandled error in event '{event}'", exc_info=True)

    # Responses

    async def _send(self, interaction: discord.Interaction, ephemeral: bool = False, **kwargs):
        if interaction.response.is_done():
            await interaction.followup.send(ephemeral=ephemeral, **kwargs)
        else:
            await interaction.response.send_message(ephemeral=ephemeral, **kwargs)

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Ephemeral red embed; plain text when the embed cannot be sent."""
        embed = discord.Embed(title=title, description=message, color=0xff0000)
        embed.set_footer(text="Still stuck? /help lists every command.")
        try:
            await self._send(interaction, ephemeral=True, embed=embed)
            return
        except discord.HTTPException as e:
            logger.error(f"Error embed could not be sent: {e}")

        try:
            await self._send(interaction, ephemeral=True, content=f"{title}: {message}")
        except discord.HTTPException:
            logger.error("Failed to send fallback error message")

    async def handle_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        """Log a failed slash command and tell the user"""
        original = getattr(error, 'original', error)
        command_name = interaction.command.name if interaction.command else "unknown"
        logger.error(f"Error in /{command_name}: {original}", exc_info=original)
        await self.send_error_response(
            interaction,
            "An error occurred while processing your command. Please try again.",
            "❌ Command Error"
        )

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        embed = discord.Embed(title=title, description=message, color=0x6699ff)
        try:
            await self._send(interaction, ephemeral=True, embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Info message could not be sent: {e}")

    # Command handlers

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        help_embed = discord.Embed(
            title="🎯 Trivia Quiz Bot Commands",
            description="Answer as many questions as you can before the timer runs out!",
            color=0x00ff00
        )
        help_embed.add_field(
            name="🎮 Play",
            value=(
                "`/trivia <category> <difficulty> [online]` - Start a timed quiz\n"
                "`/my_quiz <category>` - Play user-created questions\n"
                "`/answer <number>` - Answer the current question\n"
                "`/stop` - Stop your quiz\n"
                "`/status` - Show quiz progress\n"
                "`/categories` - List playable categories"
            ),
            inline=False
        )
        help_embed.add_field(
            name="🏆 Profile",
            value=(
                "`/login <name>` - Set your leaderboard name\n"
                "`/leaderboard` - Show the best players\n"
                "`/achievements` - Show your achievement progress"
            ),
            inline=False
        )
        help_embed.add_field(
            name="✏️ Create",
            value=(
                "`/create_question` - Add your own question\n"
                "`/generate_question <category> <difficulty>` - Let AI write one"
            ),
            inline=False
        )
        help_embed.add_field(
            name="📋 Settings",
            value=(
                "`/set_questions <number>` - Questions per quiz "
                f"({ConfigManager.MIN_QUESTION_COUNT}-{ConfigManager.MAX_QUESTION_COUNT})\n"
                "`/set_duration <seconds>` - Quiz timer "
                f"({ConfigManager.MIN_SESSION_DURATION}-{ConfigManager.MAX_SESSION_DURATION}s)\n"
                "`/random_order` - Toggle random question order"
            ),
            inline=False
        )
        help_embed.add_field(
            name="⚙️ Current Settings",
            value=f"```\n{self.config_manager.get_settings_summary()}\n```",
            inline=False
        )
        help_embed.set_footer(text="Use slash commands to interact with the bot")
        await interaction.response.send_message(embed=help_embed)

    async def handle_categories(self, interaction: discord.Interaction):
        """Handle /categories command"""
        embed = discord.Embed(title="📚 Categories", color=0x6699ff)
        summary = self.data_manager.get_loading_summary()

        catalog = summary['categories']
        embed.add_field(
            name="Bundled Questions",
            value="\n".join(f"• {c}" for c in catalog) if catalog else "None loaded",
            inline=False
        )
        embed.add_field(
            name="Online (`online: True`)",
            value="\n".join(f"• {c}" for c in OpenTriviaClient.available_categories()),
            inline=False
        )
        user_categories = summary['user_categories']
        embed.add_field(
            name="User-Created (`/my_quiz`)",
            value="\n".join(f"• {c}" for c in user_categories) if user_categories else "None yet",
            inline=False
        )
        if summary['fallback_active']:
            embed.set_footer(text="⚠️ Quiz files could not be loaded, a fallback quiz is active")
        elif summary['error_count']:
            embed.set_footer(text=f"⚠️ {summary['error_count']} quiz file(s) skipped, see the bot log")
        await interaction.response.send_message(embed=embed)

    async def handle_trivia(
        self,
        interaction: discord.Interaction,
        category: str,
        difficulty: str,
        online: bool = False
    ):
        """Handle /trivia command"""
        channel_id = str(interaction.channel_id)
        if self.quiz_controller.has_active_session(channel_id):
            await self.send_error_response(
                interaction,
                "A quiz is already running in this channel. Please stop it first with `/stop`.",
                "❌ Quiz Already Running"
            )
            return

        settings = self.config_manager.get_quiz_settings()
        if online:
            await interaction.response.defer()
            try:
                questions = await self.trivia_client.fetch_questions(
                    category, difficulty, settings.question_count
                )
            except QuestionSourceError as e:
                logger.warning(f"Online question fetch failed: {e}")
                await self.send_error_response(interaction, str(e), "❌ Could Not Load Questions")
                return
        else:
            try:
                questions = self.data_manager.get_questions(category, difficulty)
            except ValueError as e:
                await self.send_error_response(interaction, str(e), "❌ Invalid Selection")
                return
            if not questions:
                await self.send_error_response(
                    interaction,
                    f"No {difficulty} questions found for **{category}**. Use `/categories` to see what is available.",
                    "❌ No Questions"
                )
                return

        await self.start_session(interaction, questions, f"{category} ({difficulty})")

    async def handle_my_quiz(self, interaction: discord.Interaction, category: str):
        """Handle /my_quiz command"""
        questions = self.data_manager.get_user_questions(category)
        if not questions:
            await self.send_error_response(
                interaction,
                f"No user-created questions in **{category}**. Add some with `/create_question`.",
                "❌ No Questions"
            )
            return
        await self.start_session(interaction, questions, f"{category} (custom)")

    async def start_session(self, interaction: discord.Interaction, questions, label: str):
        """Start a quiz for the invoking user and post its first question."""
        channel_id = str(interaction.channel_id)
        channel = interaction.channel

        async def on_tick(snapshot: SessionSnapshot):
            await self.update_timer_display(channel_id, snapshot)

        async def on_question(snapshot: SessionSnapshot, question: Question):
            await self.present_question(channel_id, channel, label, snapshot, question)

        async def on_finished(result: QuizResult, profile_update: Optional[ProfileUpdate]):
            await self.present_result(channel_id, channel, label, result, profile_update)

        result = self.quiz_controller.start_quiz(
            channel_id,
            interaction.user.id,
            interaction.user.display_name,
            questions,
            on_tick=on_tick,
            on_question=on_question,
            on_finished=on_finished,
            label=label
        )
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Quiz Start Failed")
            return

        info = result['session_info']
        embed = discord.Embed(
            title="🎯 Quiz Started!",
            description=f"**{label}** for {interaction.user.mention}",
            color=0x00ff00
        )
        embed.add_field(
            name="📊 Quiz Details",
            value=(
                f"Questions: {info['total_questions']}\n"
                f"Timer: {info['settings']['session_duration']} seconds for the whole quiz"
            ),
            inline=False
        )
        await self._send(interaction, embed=embed)
        await self.present_question(channel_id, channel, label, result['snapshot'], result['question'])

    async def present_question(
        self,
        channel_id: str,
        channel: discord.abc.Messageable,
        label: str,
        snapshot: SessionSnapshot,
        question: Question
    ):
        """Post a question with its answer buttons."""
        previous = self._quiz_messages.get(channel_id)
        if previous is not None:
            try:
                await previous.message.edit(view=None)
            except discord.HTTPException as e:
                logger.debug(f"Could not clear buttons on previous question: {e}")

        try:
            message = await channel.send(
                embed=build_question_embed(label, snapshot, question),
                view=AnswerView(self, question)
            )
        except discord.HTTPException as e:
            logger.error(f"Failed to present question in channel {channel_id}: {e}")
            return
        self._quiz_messages[channel_id] = QuizMessage(message, question, label)

    async def update_timer_display(self, channel_id: str, snapshot: SessionSnapshot):
        """Refresh the remaining time on the current question."""
        remaining = snapshot.remaining_seconds
        # Every 5 seconds, then every second near the end
        if remaining % 5 != 0 and remaining > 5:
            return
        current = self._quiz_messages.get(channel_id)
        if current is None:
            return
        try:
            await current.message.edit(
                embed=build_question_embed(current.label, snapshot, current.question, current.feedback)
            )
        except discord.HTTPException as e:
            logger.warning(f"Failed to update timer message in channel {channel_id}: {e}")

    async def present_result(
        self,
        channel_id: str,
        channel: discord.abc.Messageable,
        label: str,
        result: QuizResult,
        profile_update: Optional[ProfileUpdate]
    ):
        """Close the last question and post the final score."""
        current = self._quiz_messages.pop(channel_id, None)
        if current is not None:
            try:
                await current.message.edit(view=None)
            except discord.HTTPException as e:
                logger.debug(f"Could not clear buttons on last question: {e}")

        # /stop replies with its own summary
        if result.finish_reason is FinishReason.CANCELLED:
            return
        try:
            await channel.send(embed=build_result_embed(label, result, profile_update))
        except discord.HTTPException as e:
            logger.error(f"Failed to send quiz result in channel {channel_id}: {e}")

    async def handle_answer(self, interaction: discord.Interaction, answer_index: int, from_button: bool = False):
        """Handle /answer and the answer buttons"""
        channel_id = str(interaction.channel_id)
        result = self.quiz_controller.submit_answer(channel_id, interaction.user.id, answer_index)

        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Answer Not Accepted")
            return
        if not result['accepted']:
            await self.send_info_response(interaction, "Your answer is already locked in. Hang on for the next question!")
            return

        question = result['question']
        feedback = build_feedback(question, result['correct'])
        current = self._quiz_messages.get(channel_id)
        label = current.label if current is not None else "Trivia"
        if current is not None and current.question is question:
            current.feedback = feedback

        embed = build_question_embed(label, result['snapshot'], question, feedback)
        if from_button:
            await interaction.response.edit_message(embed=embed, view=None)
        else:
            await interaction.response.send_message(embed=embed)
            if current is not None:
                try:
                    await current.message.edit(embed=embed, view=None)
                except discord.HTTPException as e:
                    logger.debug(f"Could not update question message: {e}")

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        result = await self.quiz_controller.stop_quiz(interaction.channel_id, interaction.user.id)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Cannot Stop Quiz")
            return

        info = result['session_info']
        quiz_result = result['result']
        embed = discord.Embed(
            title="🛑 Quiz Stopped",
            description=f"**{info['label']}** has been ended",
            color=0xff6600
        )
        embed.add_field(
            name="📊 Final Stats",
            value=(
                f"Score: {quiz_result.score}/{quiz_result.total_questions}\n"
                f"Reached question {info['current_question']}/{info['total_questions']}"
            ),
            inline=False
        )
        embed.set_footer(text="Stopped quizzes do not count towards the leaderboard")
        await interaction.response.send_message(embed=embed)

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        info = self.quiz_controller.get_session_progress(interaction.channel_id)
        if info is None:
            await self.send_info_response(
                interaction,
                "No active quiz in this channel. Use `/trivia` to start one.",
                "ℹ️ No Active Quiz"
            )
            return

        embed = discord.Embed(title="📊 Quiz Status", description=f"**{info['label']}**", color=0x6699ff)
        embed.add_field(name="Player", value=info['player_name'], inline=True)
        embed.add_field(
            name="Progress",
            value=f"{info['current_question']}/{info['total_questions']}",
            inline=True
        )
        embed.add_field(name="Score", value=str(info['score']), inline=True)
        embed.add_field(name="Time Left", value=f"{info['remaining_seconds']}s", inline=True)
        await interaction.response.send_message(embed=embed)

    async def handle_leaderboard(self, interaction: discord.Interaction):
        """Handle /leaderboard command"""
        entries = self.profile_manager.get_leaderboard()
        embed = discord.Embed(title="🏆 Leaderboard", color=0xffd700)
        if not entries:
            embed.description = "No scores yet. Be the first!"
        else:
            medals = ["🥇", "🥈", "🥉"]
            embed.description = "\n".join(
                f"{medals[i] if i < len(medals) else f'{i + 1}.'} **{entry.name}** - {entry.score}"
                for i, entry in enumerate(entries)
            )
        await interaction.response.send_message(embed=embed)

    async def handle_achievements(self, interaction: discord.Interaction):
        """Handle /achievements command"""
        rows = self.profile_manager.get_achievements(interaction.user.id)
        embed = discord.Embed(title="🏅 Achievements", color=0x00ff00)
        for row in rows:
            achievement = row['achievement']
            status = "✅" if row['unlocked'] else "🔒"
            embed.add_field(
                name=f"{status} {achievement.title}",
                value=f"{achievement.description}\nProgress: {row['progress']}/{achievement.target_value}",
                inline=False
            )
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_login(self, interaction: discord.Interaction, name: str):
        """Handle /login command"""
        try:
            profile = self.profile_manager.login(interaction.user.id, name)
        except ValueError as e:
            await self.send_error_response(interaction, str(e), "❌ Invalid Name")
            return
        await self.send_info_response(
            interaction,
            f"You will appear on the leaderboard as **{profile.name}**.",
            "✅ Logged In"
        )

    async def handle_create_question(
        self,
        interaction: discord.Interaction,
        category: str,
        question: str,
        answers,
        correct_index: int,
        explanation: Optional[str] = None
    ):
        """Handle /create_question command"""
        result = self.data_manager.add_user_question(category, question, answers, correct_index, explanation)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Question Not Saved")
            return
        await self.send_info_response(interaction, result['user_message'], "✅ Question Saved")

    async def handle_generate_question(self, interaction: discord.Interaction, category: str, difficulty: str):
        """Handle /generate_question command"""
        await interaction.response.defer(ephemeral=True)
        try:
            generated = await self.question_generator.generate(category, difficulty)
        except QuestionGenerationError as e:
            logger.warning(f"Question generation failed: {e}")
            await self.send_error_response(interaction, str(e), "❌ Generation Failed")
            return

        result = self.data_manager.add_user_question(
            generated.category,
            generated.text,
            [answer.text for answer in generated.answers],
            generated.correct_index,
            generated.explanation
        )
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Question Not Saved")
            return

        embed = discord.Embed(title="🤖 Generated Question", description=generated.text, color=0x00ff00)
        embed.add_field(
            name="Answers",
            value="\n".join(
                f"{'✅' if answer.is_correct else '▫️'} {answer.text}" for answer in generated.answers
            ),
            inline=False
        )
        if generated.explanation:
            embed.add_field(name="Explanation", value=generated.explanation, inline=False)
        embed.set_footer(text=f"Saved to '{generated.category}'. Play it with /my_quiz.")
        await interaction.followup.send(embed=embed, ephemeral=True)

    async def handle_set_questions(self, interaction: discord.Interaction, number: int):
        """Handle /set_questions command"""
        result = self.config_manager.set_question_count(number)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Invalid Question Count")
            return
        await self.send_info_response(interaction, result['user_message'], "✅ Settings Updated")

    async def handle_set_duration(self, interaction: discord.Interaction, seconds: int):
        """Handle /set_duration command"""
        result = self.config_manager.set_session_duration(seconds)
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Invalid Timer")
            return
        await self.send_info_response(interaction, result['user_message'], "✅ Settings Updated")

    async def handle_random_order(self, interaction: discord.Interaction):
        """Handle /random_order command"""
        result = self.config_manager.toggle_random_order()
        await self.send_info_response(interaction, result['user_message'], "✅ Settings Updated")


async def run_bot(token=None, config=None):
    """Connect and run until the bot is closed; login problems are logged, not raised."""
    token = token or os.getenv('DISCORD_BOT_TOKEN')
    if not token:
        logger.error("Cannot start: no Discord bot token")
        return

    bot = QuizBot(config)
    try:
        logger.info("Connecting to Discord")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Discord rejected the bot token")
    except discord.HTTPException as e:
        logger.error(f"Discord HTTP error: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
